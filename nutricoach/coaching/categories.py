"""Notification categories and how each maps onto member/member-type fields."""

from enum import StrEnum

from nutricoach.coaching.errors import UnknownCategoryError


class NotificationCategory(StrEnum):
    MORNING = "morning"
    LUNCH = "lunch"
    DINNER = "dinner"
    EVENING = "evening"
    WEEKLY = "weekly"
    WATER = "water"
    PHOTO = "photo"
    EXERCISE = "exercise"
    MILESTONE = "milestone"
    INACTIVE = "inactive"


# Member preference flag per category. milestone/inactive have none.
PREFERENCE_FIELDS: dict[NotificationCategory, str] = {
    NotificationCategory.MORNING: "notify_morning_coach",
    NotificationCategory.LUNCH: "notify_lunch_suggestion",
    NotificationCategory.DINNER: "notify_dinner_suggestion",
    NotificationCategory.EVENING: "notify_evening_summary",
    NotificationCategory.WEEKLY: "notify_weekly_insights",
    NotificationCategory.WATER: "notify_water_reminder",
    NotificationCategory.PHOTO: "notify_progress_photo",
    NotificationCategory.EXERCISE: "notify_post_exercise",
}

# Member-type schedule time per time-of-day category
SCHEDULE_TIME_FIELDS: dict[NotificationCategory, str] = {
    NotificationCategory.MORNING: "morning_time",
    NotificationCategory.LUNCH: "lunch_time",
    NotificationCategory.DINNER: "dinner_time",
    NotificationCategory.EVENING: "evening_time",
}

SCHEDULED_CATEGORIES = frozenset(SCHEDULE_TIME_FIELDS)

# Sent at most once per local day
DAILY_CATEGORIES = frozenset(
    {
        NotificationCategory.WEEKLY,
        NotificationCategory.PHOTO,
        NotificationCategory.EXERCISE,
        NotificationCategory.MILESTONE,
        NotificationCategory.INACTIVE,
    }
)

# Membership anniversaries (days since creation) that earn a milestone message
MILESTONE_DAYS = frozenset({7, 14, 30, 60, 90, 180, 365})

# Local hour ranges used to decide whether a meal was already logged
MEAL_HOUR_RANGES: dict[NotificationCategory, tuple[int, int]] = {
    NotificationCategory.LUNCH: (10, 15),
    NotificationCategory.DINNER: (15, 22),
}


def parse_category(value: str) -> NotificationCategory:
    """Parse a category name.

    Raises:
        UnknownCategoryError: If the name is not a known category
    """
    try:
        return NotificationCategory(value)
    except ValueError:
        raise UnknownCategoryError(value) from None
