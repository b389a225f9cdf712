"""Notification copy and event keys for request/merge outcomes."""

from typing import Optional, Tuple


def _apartment_suffix(title: Optional[str], city: Optional[str]) -> str:
    suffix = f": {title}" if title else ""
    if city:
        suffix += f" ({city})"
    return suffix


def merge_invited(inviter_label: str) -> Tuple[str, str]:
    return (
        "בקשת מיזוג פרופילים",
        f"{inviter_label} מבקש/ת למזג איתך פרופילים לפרופיל משותף.",
    )


def merge_approved(approver_label: str) -> Tuple[str, str]:
    return (
        "מיזוג פרופילים אושר",
        f"{approver_label} אישר/ה את בקשת מיזוג הפרופילים.",
    )


def apartment_invite_approved(approver_label: str, apt_title: Optional[str] = None, apt_city: Optional[str] = None) -> Tuple[str, str]:
    return (
        "הזמנה אושרה",
        f"{approver_label} אישר/ה והתווסף/ה כשותף/ה לדירה{_apartment_suffix(apt_title, apt_city)}.",
    )


def apartment_join_approved(apt_title: Optional[str] = None, apt_city: Optional[str] = None) -> Tuple[str, str]:
    return (
        "בקשתך אושרה",
        f"מנהל הנכס מעוניין בך כשותף בדירה{_apartment_suffix(apt_title, apt_city)}. "
        "אנא העבירו את השיחה לוואטסאפ כדי להשלים את התהליך.",
    )


def match_approved(approver_label: str) -> Tuple[str, str]:
    return (
        "בקשת ההתאמה אושרה",
        f"{approver_label} אישר/ה את בקשת ההתאמה שלך. ניתן להמשיך לשיחה ולתאם היכרות.",
    )


def match_rejected(rejecter_label: str) -> Tuple[str, str]:
    return (
        "בקשת ההתאמה נדחתה",
        f"{rejecter_label} דחה/תה את בקשת ההתאמה שלך. אפשר להמשיך ולחפש התאמות נוספות.",
    )


def event_key(entity: str, entity_id: str, outcome: str) -> str:
    """e.g. event_key("match", "<id>", "approved") -> "match:<id>:approved" """
    return f"{entity}:{entity_id}:{outcome}"
