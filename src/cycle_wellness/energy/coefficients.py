"""Reference energy coefficients for everyday activities.

Each activity carries a base effect on energy (negative drains, positive
restores, range -1..1), a modifier for each cycle phase, a modifier for each
time of day, and a stress coefficient describing how strongly the user's
current stress level amplifies the effect.

Category and activity names are user-facing data and are kept in Russian,
the language of the app's users.

## Lookup

```python
coef = get_event_coefficient("Совещание (30-60м)")
coef.base                        # -0.40
coef.phase_modifier(CyclePhase.MENSTRUAL)   # -0.70
simple_coefficient(coef, CyclePhase.MENSTRUAL, TimeOfDay.MORNING)  # -1.70
```

The stress-aware formula used for scoring events lives in
`cycle_wellness.energy.impact`.
"""

from __future__ import annotations

from dataclasses import dataclass

from cycle_wellness.cycle.phase import CyclePhase, TimeOfDay


@dataclass(frozen=True)
class EventCoefficient:
    """Coefficients for one activity type."""

    category: str
    event_type: str
    base: float
    menstrual: float
    follicular: float
    ovulation: float
    luteal: float
    morning: float
    afternoon: float
    evening: float
    stress_coefficient: float

    def phase_modifier(self, phase: CyclePhase) -> float:
        return getattr(self, phase.value)

    def time_modifier(self, time_of_day: TimeOfDay) -> float:
        return getattr(self, time_of_day.value)


def _row(
    category: str,
    event_type: str,
    base: float,
    phases: tuple[float, float, float, float],
    times: tuple[float, float, float],
    stress: float,
) -> EventCoefficient:
    menstrual, follicular, ovulation, luteal = phases
    morning, afternoon, evening = times
    return EventCoefficient(
        category=category,
        event_type=event_type,
        base=base,
        menstrual=menstrual,
        follicular=follicular,
        ovulation=ovulation,
        luteal=luteal,
        morning=morning,
        afternoon=afternoon,
        evening=evening,
        stress_coefficient=stress,
    )


# (category, activity, base, (menstrual, follicular, ovulation, luteal),
#  (morning, afternoon, evening), stress)
EVENT_COEFFICIENTS: tuple[EventCoefficient, ...] = (
    # Work
    _row("РАБОТА", "Фокус-работа (2-4ч)", -0.30, (-0.50, -0.10, 0.00, -0.40), (-0.40, -0.20, -0.60), 0.20),
    _row("РАБОТА", "Совещание (30-60м)", -0.40, (-0.70, -0.20, -0.10, -0.50), (-0.60, -0.30, -0.50), 0.60),
    _row("РАБОТА", "Презентация", -0.60, (-1.00, -0.30, -0.10, -0.70), (-0.70, -0.50, -0.80), 0.80),
    _row("РАБОТА", "Письма/Email", -0.15, (-0.30, -0.05, 0.00, -0.20), (-0.20, -0.10, -0.30), 0.15),
    _row("РАБОТА", "Звонок/видеокол", -0.25, (-0.50, -0.10, -0.05, -0.35), (-0.40, -0.20, -0.40), 0.40),
    _row("РАБОТА", "Конфликт с коллегой", -0.80, (-1.00, -0.60, -0.40, -0.90), (-0.70, -0.70, -0.90), 1.00),
    _row("РАБОТА", "Дедлайн/спешка", -0.70, (-1.00, -0.50, -0.30, -0.80), (-0.80, -0.70, -0.80), 0.90),
    # Family
    _row("СЕМЬЯ", "Ужин с семьёй", -0.15, (-0.30, 0.10, 0.20, -0.20), (0.00, 0.00, -0.30), 0.10),
    _row("СЕМЬЯ", "Помощь ребёнку", -0.30, (-0.50, -0.10, -0.05, -0.40), (-0.20, -0.40, -0.30), 0.25),
    _row("СЕМЬЯ", "Ссора с партнёром", -0.70, (-1.00, -0.50, -0.30, -0.80), (-0.60, -0.70, -0.80), 0.95),
    _row("СЕМЬЯ", "Разговор с родителями", -0.40, (-0.60, -0.20, -0.10, -0.50), (-0.40, -0.30, -0.50), 0.50),
    _row("СЕМЬЯ", "День рождения/праздник", -0.20, (-0.40, 0.20, 0.30, -0.25), (-0.10, 0.00, -0.35), 0.15),
    # Household
    _row("БЫТ", "Уборка (30-60м)", -0.25, (-0.50, -0.05, 0.10, -0.30), (-0.20, -0.20, -0.40), 0.20),
    _row("БЫТ", "Магазин (30-40м)", -0.20, (-0.40, 0.00, 0.10, -0.25), (-0.10, -0.20, -0.30), 0.15),
    _row("БЫТ", "Стирка/готовка", -0.15, (-0.30, -0.05, 0.00, -0.20), (-0.10, -0.15, -0.20), 0.10),
    _row("БЫТ", "Готовка (1-2ч)", -0.20, (-0.40, -0.05, 0.05, -0.25), (-0.15, -0.20, -0.30), 0.15),
    _row("БЫТ", "Кухня/посуда", -0.10, (-0.20, 0.00, 0.05, -0.15), (-0.05, -0.10, -0.15), 0.08),
    _row("БЫТ", "Стирка", -0.12, (-0.25, 0.00, 0.05, -0.15), (-0.10, -0.10, -0.15), 0.10),
    _row("БЫТ", "Финансы/бумаги", -0.35, (-0.60, -0.15, -0.05, -0.45), (-0.35, -0.30, -0.45), 0.70),
    _row("БЫТ", "Ремонт/сантехник", -0.40, (-0.70, -0.20, -0.10, -0.50), (-0.40, -0.35, -0.50), 0.75),
    _row("БЫТ", "Автомобиль/техника", -0.30, (-0.55, -0.10, 0.00, -0.40), (-0.25, -0.25, -0.40), 0.60),
    # Social
    _row("СОЦИУМ", "Вечеринка/мероприятие", -0.35, (-0.60, 0.10, 0.30, -0.40), (-0.20, -0.20, -0.50), 0.30),
    _row("СОЦИУМ", "Встреча с друзьями", -0.20, (-0.40, 0.10, 0.20, -0.25), (-0.10, -0.15, -0.30), 0.15),
    _row("СОЦИУМ", "Сетевое мероприятие", -0.50, (-0.80, -0.20, 0.10, -0.60), (-0.50, -0.40, -0.65), 0.75),
    _row("СОЦИУМ", "Встреча 1-на-1", -0.25, (-0.45, -0.05, 0.10, -0.35), (-0.20, -0.15, -0.40), 0.35),
    _row("СОЦИУМ", "Консультация/совет", -0.30, (-0.50, -0.10, 0.05, -0.40), (-0.30, -0.25, -0.45), 0.50),
    _row("СОЦИУМ", "Комплимент/похвала", 0.15, (0.10, 0.20, 0.30, 0.10), (0.15, 0.20, 0.10), -0.30),
    # Sport
    _row("СПОРТ", "Тренировка (60м)", -0.20, (-0.60, 0.20, 0.40, -0.30), (-0.10, 0.10, -0.30), 0.15),
    _row("СПОРТ", "Йога (мягкая, 30м)", 0.20, (0.40, 0.10, 0.00, 0.30), (0.30, 0.20, 0.10), -0.40),
    _row("СПОРТ", "Йога (интенсивная)", -0.15, (-0.40, 0.15, 0.35, -0.25), (-0.05, 0.10, -0.25), 0.10),
    _row("СПОРТ", "Кардио/HIIT", -0.40, (-0.80, 0.30, 0.50, -0.50), (-0.30, 0.10, -0.50), 0.25),
    _row("СПОРТ", "Силовая тренировка", -0.25, (-0.60, 0.15, 0.35, -0.35), (-0.15, 0.05, -0.35), 0.20),
    _row("СПОРТ", "Прогулка быстрая", 0.20, (0.00, 0.40, 0.50, 0.15), (0.30, 0.25, 0.10), -0.25),
    _row("СПОРТ", "Пилатес", 0.15, (0.20, 0.10, 0.10, 0.20), (0.20, 0.15, 0.10), -0.35),
    _row("СПОРТ", "Растяжка", 0.25, (0.35, 0.20, 0.15, 0.30), (0.30, 0.25, 0.20), -0.50),
    _row("СПОРТ", "Танцы/зумба", -0.10, (-0.40, 0.25, 0.45, -0.20), (0.00, 0.15, -0.20), 0.05),
    # Recovery
    _row("ВОССТАНОВЛЕНИЕ", "Сон (7-8ч)", 0.80, (1.00, 0.60, 0.40, 0.90), (0.00, 0.30, 1.00), -1.00),
    _row("ВОССТАНОВЛЕНИЕ", "Прогулка (20-30м)", 0.40, (0.20, 0.60, 0.70, 0.30), (0.50, 0.40, 0.20), -0.35),
    _row("ВОССТАНОВЛЕНИЕ", "Медитация (20м)", 0.50, (0.70, 0.40, 0.30, 0.60), (0.60, 0.50, 0.40), -0.70),
    _row("ВОССТАНОВЛЕНИЕ", "Массаж/СПА", 0.60, (0.90, 0.30, 0.20, 0.70), (0.40, 0.70, 0.60), -0.80),
    _row("ВОССТАНОВЛЕНИЕ", "Ванна горячая", 0.55, (0.85, 0.35, 0.25, 0.65), (0.20, 0.40, 0.75), -0.75),
    _row("ВОССТАНОВЛЕНИЕ", "Читать/хобби", 0.35, (0.50, 0.25, 0.15, 0.45), (0.20, 0.35, 0.45), -0.50),
    _row("ВОССТАНОВЛЕНИЕ", "Фильм/сериал", 0.30, (0.45, 0.20, 0.10, 0.40), (0.10, 0.25, 0.40), -0.45),
    _row("ВОССТАНОВЛЕНИЕ", "Творчество/рисование", 0.40, (0.55, 0.30, 0.20, 0.50), (0.35, 0.40, 0.45), -0.55),
    _row("ВОССТАНОВЛЕНИЕ", "Музыка/пение", 0.45, (0.65, 0.35, 0.25, 0.55), (0.40, 0.45, 0.50), -0.60),
    _row("ВОССТАНОВЛЕНИЕ", "Природа/лес", 0.50, (0.70, 0.40, 0.30, 0.60), (0.55, 0.50, 0.45), -0.65),
    _row("ВОССТАНОВЛЕНИЕ", "Объятия/связь", 0.35, (0.50, 0.25, 0.15, 0.45), (0.30, 0.35, 0.40), -0.55),
    _row("ВОССТАНОВЛЕНИЕ", "Секс", 0.25, (0.10, 0.40, 0.50, 0.20), (0.15, 0.30, 0.25), -0.70),
    _row("ВОССТАНОВЛЕНИЕ", "Интимность", 0.30, (0.20, 0.35, 0.45, 0.25), (0.25, 0.30, 0.35), -0.65),
    # Health
    _row("ЗДОРОВЬЕ", "Приём врача", -0.45, (-0.70, -0.25, -0.15, -0.55), (-0.40, -0.50, -0.50), 0.85),
    _row("ЗДОРОВЬЕ", "Анализы/тесты", -0.40, (-0.65, -0.20, -0.10, -0.50), (-0.35, -0.45, -0.45), 0.80),
    _row("ЗДОРОВЬЕ", "Стоматолог", -0.50, (-0.80, -0.30, -0.20, -0.60), (-0.50, -0.55, -0.55), 0.95),
    _row("ЗДОРОВЬЕ", "Физиотерапия", -0.30, (-0.50, -0.10, 0.00, -0.40), (-0.25, -0.30, -0.35), 0.60),
    _row("ЗДОРОВЬЕ", "Принять лекарство", -0.10, (-0.20, 0.00, 0.05, -0.15), (-0.10, -0.10, -0.10), 0.30),
    _row("ЗДОРОВЬЕ", "Витамины", 0.10, (0.15, 0.10, 0.05, 0.15), (0.10, 0.10, 0.10), -0.20),
    # Knowledge
    _row("ЗНАНИЯ", "Учёба/курс", -0.35, (-0.55, -0.15, -0.05, -0.45), (-0.35, -0.30, -0.45), 0.50),
    _row("ЗНАНИЯ", "Вебинар", -0.30, (-0.50, -0.10, 0.00, -0.40), (-0.30, -0.25, -0.40), 0.45),
    _row("ЗНАНИЯ", "Чтение (деловое)", -0.20, (-0.40, 0.00, 0.10, -0.30), (-0.20, -0.15, -0.30), 0.30),
    _row("ЗНАНИЯ", "Подкаст/аудиокн", 0.15, (0.00, 0.25, 0.35, 0.10), (0.20, 0.20, 0.10), -0.25),
    # Emotions
    _row("ЭМОЦИИ", "Конфликт/ссора", -0.85, (-1.00, -0.70, -0.50, -0.95), (-0.80, -0.85, -0.95), 1.00),
    _row("ЭМОЦИИ", "Критика/отказ", -0.70, (-1.00, -0.50, -0.30, -0.80), (-0.70, -0.70, -0.80), 0.95),
    _row("ЭМОЦИИ", "Успех/достижение", 0.60, (0.40, 0.70, 0.80, 0.50), (0.60, 0.65, 0.55), -0.80),
    _row("ЭМОЦИИ", "Вдохновение", 0.55, (0.35, 0.65, 0.75, 0.45), (0.55, 0.60, 0.50), -0.75),
    _row("ЭМОЦИИ", "Печаль/горе", -0.60, (-0.90, -0.40, -0.20, -0.70), (-0.60, -0.60, -0.70), 0.90),
    _row("ЭМОЦИИ", "Тревога/паника", -0.75, (-1.00, -0.55, -0.35, -0.85), (-0.75, -0.75, -0.85), 1.00),
    _row("ЭМОЦИИ", "Благодарность", 0.50, (0.35, 0.60, 0.70, 0.40), (0.50, 0.55, 0.45), -0.70),
    # Nutrition
    _row("ПИТАНИЕ", "Завтрак питательный", 0.20, (0.30, 0.15, 0.10, 0.25), (0.25, 0.00, 0.00), -0.30),
    _row("ПИТАНИЕ", "Обед полезный", 0.25, (0.35, 0.20, 0.15, 0.30), (0.00, 0.30, 0.00), -0.35),
    _row("ПИТАНИЕ", "Ужин лёгкий", 0.15, (0.25, 0.10, 0.05, 0.20), (0.00, 0.00, 0.20), -0.25),
    _row("ПИТАНИЕ", "Сладкое/конфеты", -0.05, (-0.15, 0.10, 0.15, -0.10), (-0.05, 0.05, -0.10), 0.15),
    _row("ПИТАНИЕ", "Кофе/кофеин", -0.15, (-0.30, 0.00, 0.10, -0.20), (-0.20, -0.10, -0.25), 0.35),
    _row("ПИТАНИЕ", "Алкоголь", -0.25, (-0.40, -0.10, 0.00, -0.30), (-0.30, 0.00, -0.35), 0.50),
    _row("ПИТАНИЕ", "Вода (гидратация)", 0.15, (0.25, 0.10, 0.05, 0.20), (0.15, 0.15, 0.15), -0.20),
    # Hygiene
    _row("ГИГИЕНА", "Душ холодный", 0.30, (0.10, 0.45, 0.50, 0.20), (0.40, 0.30, 0.20), -0.40),
    _row("ГИГИЕНА", "Душ горячий", 0.25, (0.40, 0.15, 0.05, 0.35), (0.10, 0.20, 0.35), -0.35),
    _row("ГИГИЕНА", "Макияж", 0.10, (0.00, 0.15, 0.20, 0.05), (0.15, 0.10, 0.00), -0.15),
    _row("ГИГИЕНА", "Прическа/волосы", 0.15, (0.05, 0.20, 0.25, 0.10), (0.20, 0.15, 0.05), -0.20),
    _row("ГИГИЕНА", "Уход за кожей", 0.20, (0.30, 0.15, 0.10, 0.25), (0.15, 0.10, 0.25), -0.25),
)

_BY_NAME: dict[str, EventCoefficient] = {
    c.event_type.lower(): c for c in EVENT_COEFFICIENTS
}


def get_event_coefficient(event_type: str) -> EventCoefficient | None:
    """Find an activity by exact name, ignoring case and surrounding spaces."""
    return _BY_NAME.get(event_type.strip().lower())


def get_events_by_category(category: str) -> list[EventCoefficient]:
    return [c for c in EVENT_COEFFICIENTS if c.category == category]


def get_all_categories() -> list[str]:
    """Categories in catalogue order."""
    return list(dict.fromkeys(c.category for c in EVENT_COEFFICIENTS))


def get_all_event_types() -> list[str]:
    return [c.event_type for c in EVENT_COEFFICIENTS]


def search_events(query: str) -> list[EventCoefficient]:
    """Activities whose name contains `query` (case-insensitive)."""
    needle = query.strip().lower()
    if not needle:
        return []
    return [c for c in EVENT_COEFFICIENTS if needle in c.event_type.lower()]


def simple_coefficient(
    coefficient: EventCoefficient,
    phase: CyclePhase,
    time_of_day: TimeOfDay,
) -> float:
    """Additive score without stress: base + phase modifier + time modifier."""
    return round(
        coefficient.base
        + coefficient.phase_modifier(phase)
        + coefficient.time_modifier(time_of_day),
        3,
    )
