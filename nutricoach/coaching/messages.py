"""Coaching message text: AI prompt, deterministic fallback library and push card.

The AI generator is preferred; any failure, timeout or empty answer falls
back to a fixed template filled in from the member's context.
"""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from nutricoach.coaching.categories import NotificationCategory
from nutricoach.coaching.context import MemberContext
from nutricoach.coaching.interfaces import TextGenerator

COACH_SYSTEM_PROMPT = """คุณคือโค้ชโภชนาการส่วนตัวของแอป GoodFood
- พูดเป็นกันเอง สุภาพ และเรียกชื่อลูกค้า
- อ้างอิงเฉพาะข้อมูลจริงของลูกค้าที่ได้รับ ห้ามแต่งตัวเลขขึ้นเอง
- ให้คำแนะนำที่ทำได้จริงและเจาะจง ไม่ขัดกับเป้าหมายของลูกค้า
- ใช้ emoji เล็กน้อย ข้อความสั้น อ่านง่าย และไม่ซ้ำเดิมทุกวัน"""

GOAL_LABELS = {"lose": "ลดน้ำหนัก", "gain": "เพิ่มน้ำหนัก", "maintain": "รักษาน้ำหนัก"}

CARD_ICONS = {
    NotificationCategory.MORNING: "🌅",
    NotificationCategory.LUNCH: "🍽️",
    NotificationCategory.DINNER: "🍽️",
    NotificationCategory.EVENING: "📊",
    NotificationCategory.WATER: "💧",
    NotificationCategory.WEEKLY: "💡",
    NotificationCategory.PHOTO: "📸",
    NotificationCategory.EXERCISE: "🏃",
    NotificationCategory.MILESTONE: "🎉",
    NotificationCategory.INACTIVE: "😊",
}

CARD_TITLES = {
    NotificationCategory.MORNING: "กำลังใจตอนเช้า",
    NotificationCategory.LUNCH: "แนะนำมื้อกลางวัน",
    NotificationCategory.DINNER: "แนะนำมื้อเย็น",
    NotificationCategory.EVENING: "สรุปวันนี้",
    NotificationCategory.WATER: "เตือนดื่มน้ำ",
    NotificationCategory.WEEKLY: "Insights สัปดาห์",
    NotificationCategory.PHOTO: "ถ่ายรูปความคืบหน้า",
    NotificationCategory.EXERCISE: "หลังออกกำลังกาย",
    NotificationCategory.MILESTONE: "ยินดีด้วย!",
    NotificationCategory.INACTIVE: "คิดถึงนะ",
}

BRAND_COLOR = "#1DB446"


def _percent(value: int, target: int) -> int:
    return round(value / target * 100) if target else 0


def _coach_status_text(context: MemberContext) -> str:
    if context.ai_coach.is_unlimited:
        return "ไม่จำกัดระยะเวลา"
    if context.ai_coach.days_remaining:
        return f"เหลือ {context.ai_coach.days_remaining} วัน"
    return "หมดอายุ"


def _stock_lines(context: MemberContext) -> str:
    if not context.stock:
        return "- ไม่มี"
    return "\n".join(f"- {s.name} ({s.calories} kcal, P:{s.protein}g)" for s in context.stock)


def _weight_line(context: MemberContext) -> str:
    if context.weight_change is None:
        return ""
    sign = "+" if context.weight_change > 0 else ""
    return f"น้ำหนักเปลี่ยนแปลง 7 วัน: {sign}{context.weight_change:.1f} kg"


def build_prompt(category: NotificationCategory, context: MemberContext) -> str:
    """Build the user prompt for a coaching category from the member's context."""
    t = context.targets
    base = "\n".join(
        [
            "ข้อมูลลูกค้า:",
            f"- ชื่อ: {context.name}",
            f"- เป้าหมาย: {GOAL_LABELS.get(context.goal.type, GOAL_LABELS['maintain'])}",
            f"- น้ำหนักปัจจุบัน/เป้าหมาย: {context.goal.current_weight or 'ไม่ระบุ'} / {context.goal.target_weight or 'ไม่ระบุ'} kg",
            f"- AI Coach: {_coach_status_text(context)}",
            f"- บันทึกอาหารต่อเนื่อง: {context.streak_days} วัน",
            f"- เป้าหมายต่อวัน: {t.calories} kcal, โปรตีน {t.protein}g, คาร์บ {t.carbs}g, ไขมัน {t.fat}g",
        ]
    )
    meals = ", ".join(context.today_meals) or "ยังไม่ได้ทาน"
    today = context.today

    if category == NotificationCategory.MORNING:
        y = context.yesterday
        body = [
            f"เมื่อวาน: {y.calories}/{t.calories} kcal ({_percent(y.calories, t.calories)}%), "
            f"โปรตีน {y.protein}/{t.protein}g, บันทึก {y.meal_count} มื้อ",
            _weight_line(context),
            "เขียนข้อความทักทายตอนเช้า สรุปเมื่อวานสั้นๆ บอกเป้าหมายวันนี้ และให้คำแนะนำ 1 ข้อ ไม่เกิน 200 ตัวอักษร",
        ]
    elif category in (NotificationCategory.LUNCH, NotificationCategory.DINNER):
        meal_label = "มื้อกลางวัน" if category == NotificationCategory.LUNCH else "มื้อเย็น"
        body = [
            f"วันนี้ทานแล้ว {today.calories} kcal ({_percent(today.calories, t.calories)}%), โปรตีน {today.protein}g",
            f"มื้อที่ทาน: {meals}",
            f"แคลอรี่เหลือ {context.remaining_calories} kcal, โปรตีนขาด {context.missing_protein}g",
            "อาหารใน Stock:",
            _stock_lines(context),
            f"แนะนำ{meal_label} โดยเลือกจาก Stock ก่อนถ้าเหมาะสม พร้อมเหตุผลสั้นๆ ไม่เกิน 250 ตัวอักษร",
        ]
    elif category == NotificationCategory.EVENING:
        exercise = (
            f"ออกกำลังกาย: {context.exercise_today.name} (เผา {context.exercise_today.calories} kcal)"
            if context.exercise_today
            else ""
        )
        body = [
            f"สรุปวันนี้: {today.calories}/{t.calories} kcal, โปรตีน {today.protein}/{t.protein}g, "
            f"คาร์บ {today.carbs}/{t.carbs}g, ไขมัน {today.fat}/{t.fat}g, {today.meal_count} มื้อ",
            f"น้ำ: {context.water.current}/{context.water.target} แก้ว",
            exercise,
            "ประเมินวันนี้ ชมสิ่งที่ทำได้ดี บอกจุดที่ควรปรับ และแนะนำสำหรับพรุ่งนี้ 1 ข้อ ไม่เกิน 200 ตัวอักษร",
        ]
    elif category == NotificationCategory.WATER:
        body = [
            f"ดื่มน้ำแล้ว {context.water.current}/{context.water.target} แก้ว เวลา {context.local_hour}:00 น.",
            "เตือนดื่มน้ำอย่างเป็นมิตร พร้อมเหตุผลสั้นๆ ไม่เกิน 100 ตัวอักษร",
        ]
    elif category == NotificationCategory.INACTIVE:
        body = [
            "ลูกค้าไม่ได้บันทึกอาหารมาหลายวัน",
            "ส่งข้อความแสดงความเป็นห่วงโดยไม่ตำหนิ ชวนกลับมาบันทึก "
            "และบอกว่าถ่ายรูปไว้ก่อนแล้วค่อยบันทึกทีหลังได้ ไม่เกิน 150 ตัวอักษร",
        ]
    elif category == NotificationCategory.MILESTONE:
        body = [
            f"ลูกค้าเป็นสมาชิกครบรอบสำคัญ และบันทึกต่อเนื่อง {context.streak_days} วัน",
            _weight_line(context),
            "ส่งข้อความแสดงความยินดี สรุปผลลัพธ์ และให้กำลังใจไปต่อ ไม่เกิน 150 ตัวอักษร",
        ]
    elif category == NotificationCategory.EXERCISE:
        burned = context.exercise_today.calories if context.exercise_today else 0
        name = context.exercise_today.name if context.exercise_today else "ไม่ระบุ"
        body = [
            f"ออกกำลังกายวันนี้: {name} เผาไป {burned} kcal",
            f"ทานได้วันนี้รวม {t.calories + burned} kcal",
            "อาหารใน Stock:",
            _stock_lines(context),
            "แนะนำอาหารฟื้นฟูโปรตีนสูงภายใน 30-60 นาที ไม่เกิน 150 ตัวอักษร",
        ]
    elif category == NotificationCategory.WEEKLY:
        body = [
            _weight_line(context),
            f"บันทึกต่อเนื่อง {context.streak_days} วัน",
            "สรุปภาพรวมสัปดาห์นี้และตั้งเป้าหมายเล็กๆ สำหรับสัปดาห์หน้า ไม่เกิน 200 ตัวอักษร",
        ]
    elif category == NotificationCategory.PHOTO:
        body = ["ชวนลูกค้าถ่ายรูปความคืบหน้าประจำสัปดาห์ และบันทึกน้ำหนัก ไม่เกิน 120 ตัวอักษร"]
    else:
        body = ["ให้คำแนะนำทั่วไปเกี่ยวกับโภชนาการ ไม่เกิน 150 ตัวอักษร"]

    return base + "\n\n" + "\n".join(line for line in body if line)


def fallback_message(category: NotificationCategory, context: MemberContext) -> str:
    """Deterministic message used when the AI generator is unavailable."""
    name = context.name
    days = f" (เหลือ {context.ai_coach.days_remaining} วัน)" if context.ai_coach.days_remaining else ""
    remaining = context.remaining_calories

    templates = {
        NotificationCategory.MORNING: f"สวัสดีตอนเช้าครับคุณ{name} 🌅 วันนี้มาทำให้ดีกันต่อนะครับ{days} 💪",
        NotificationCategory.LUNCH: f"ใกล้เที่ยงแล้วครับคุณ{name} 🍽️ อย่าลืมบันทึกมื้อกลางวัน วันนี้เหลืออีก {remaining} kcal",
        NotificationCategory.DINNER: f"ได้เวลามื้อเย็นแล้วครับคุณ{name} 🍽️ วันนี้เหลืออีก {remaining} kcal",
        NotificationCategory.EVENING: (
            f"สรุปวันนี้ครับคุณ{name} 📊 {context.today.calories}/{context.targets.calories} kcal พรุ่งนี้สู้ต่อนะครับ!"
        ),
        NotificationCategory.WATER: f"ดื่มน้ำกันหน่อยครับคุณ{name} 💧 ตอนนี้ {context.water.current}/{context.water.target} แก้ว",
        NotificationCategory.INACTIVE: f"คิดถึงนะครับคุณ{name} 😊 กลับมาบันทึกอาหารกันต่อนะครับ ถ่ายรูปไว้ก่อนก็ได้",
        NotificationCategory.MILESTONE: (
            f"ยินดีด้วยครับคุณ{name}! 🎉 ครบรอบอีกก้าวแล้ว บันทึกต่อเนื่อง {context.streak_days} วัน ไปต่อกันเลย 💪"
        ),
        NotificationCategory.EXERCISE: (
            f"เยี่ยมมากครับคุณ{name}! 🏃 เผาไป {context.exercise_today.calories if context.exercise_today else 0} kcal "
            "อย่าลืมเติมโปรตีนนะครับ"
        ),
        NotificationCategory.WEEKLY: f"ครบอีกสัปดาห์แล้วครับคุณ{name} 💡 เข้าแอปมาดูสรุปสัปดาห์นี้กันครับ",
        NotificationCategory.PHOTO: f"ได้เวลาถ่ายรูปความคืบหน้าแล้วครับคุณ{name} 📸 เก็บไว้ดูพัฒนาการกันครับ",
    }
    return templates.get(category, f"สู้ๆ นะครับคุณ{name}! 💪")


async def generate_coaching_message(
    category: NotificationCategory,
    context: MemberContext,
    generator: TextGenerator | None,
    timeout_seconds: float,
) -> tuple[str, bool]:
    """Produce message text for a category.

    Args:
        category: Notification category
        context: Member context snapshot
        generator: AI generator, or None when AI is not configured
        timeout_seconds: Upper bound for the AI call

    Returns:
        Tuple of (text, used_ai)
    """
    if generator is None:
        return fallback_message(category, context), False

    try:
        text = await asyncio.wait_for(generator.generate(category.value, context), timeout=timeout_seconds)
    except TimeoutError:
        logger.warning("Coaching text generation timed out, using fallback", category=category.value)
        return fallback_message(category, context), False
    except Exception as e:
        logger.warning(
            "Coaching text generation failed, using fallback",
            category=category.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return fallback_message(category, context), False

    text = (text or "").strip()
    if not text:
        return fallback_message(category, context), False
    return text, True


def build_coaching_card(
    category: NotificationCategory,
    message: str,
    context: MemberContext,
    app_url: str | None = None,
) -> dict[str, Any]:
    """Wrap message text in a LINE flex bubble with title, coach status and open-app button."""
    icon = CARD_ICONS.get(category, "💬")
    title = CARD_TITLES.get(category, "AI Coach")

    if context.ai_coach.is_unlimited:
        status = "∞ ไม่จำกัด"
    elif context.ai_coach.days_remaining:
        status = f"เหลือ {context.ai_coach.days_remaining} วัน"
    else:
        status = ""

    contents: list[dict[str, Any]] = [
        {
            "type": "box",
            "layout": "horizontal",
            "contents": [
                {"type": "text", "text": icon, "size": "xl", "flex": 0},
                {"type": "text", "text": title, "weight": "bold", "size": "lg", "color": BRAND_COLOR, "margin": "md"},
            ],
        }
    ]
    if status:
        contents.append({"type": "text", "text": f"AI Coach: {status}", "size": "sm", "color": "#888888", "margin": "md"})
    contents.append({"type": "separator", "margin": "lg"})
    contents.append({"type": "text", "text": message, "wrap": True, "size": "md", "margin": "lg", "color": "#333333"})

    bubble: dict[str, Any] = {
        "type": "bubble",
        "size": "mega",
        "body": {"type": "box", "layout": "vertical", "contents": contents, "paddingAll": "20px"},
    }
    if app_url:
        bubble["footer"] = {
            "type": "box",
            "layout": "horizontal",
            "spacing": "sm",
            "contents": [
                {
                    "type": "button",
                    "style": "primary",
                    "color": BRAND_COLOR,
                    "action": {"type": "uri", "label": "เปิดแอป", "uri": app_url},
                }
            ],
        }

    return {"type": "flex", "altText": f"{icon} {title}", "contents": bubble}
