"""
Transient Group Cleanup Script
Deletes shared-profile groups left inert by interrupted merges, failed solo
collapses and members leaving: fewer than 2 ACTIVE members and no PENDING invite.
Can be run manually or as part of a nightly job.
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from app.database.supabase_client import get_service_supabase
from app.modules.groups.service import GroupService
from supabase import Client
from typing import Optional
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def cleanup_transient_groups(supabase: Client, min_age_minutes: Optional[int] = None, dry_run: bool = False) -> int:
    """Delete transient groups; returns how many were removed (or would be, on dry run)"""
    groups = GroupService(supabase)
    group_ids = groups.find_transient_groups(min_age_minutes)
    logger.info(f"Found {len(group_ids)} transient groups")

    deleted = 0
    for group_id in group_ids:
        if dry_run:
            logger.info(f"[dry run] Would delete group {group_id}")
            deleted += 1
            continue
        try:
            groups.delete_group_cascade(group_id)
            deleted += 1
            logger.debug(f"Deleted group {group_id}")
        except Exception as e:
            logger.error(f"Error deleting group {group_id}: {e}")
    return deleted


def main(argv=None):
    """Main function to clean up transient groups"""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--min-age-minutes", type=int, default=None)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)

    try:
        supabase = get_service_supabase()
        logger.info("Starting transient group cleanup...")
        count = cleanup_transient_groups(supabase, args.min_age_minutes, args.dry_run)
        logger.info(f"Cleanup completed: {count} groups removed")
    except Exception as e:
        logger.error(f"Error during cleanup: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
