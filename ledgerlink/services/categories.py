"""Built-in transaction categories and merging with user-defined ones."""

from typing import Iterable, Optional

from ledgerlink.models.ledger import Category, TransactionFlow


# (name, icon, color, bg_color, flow)
_DEFAULTS = [
    ("Salary", "payments", "#10b981", "#ecfdf5", TransactionFlow.INCOME),
    ("Freelance", "work", "#3b82f6", "#eff6ff", TransactionFlow.INCOME),
    ("Investment", "trending_up", "#8b5cf6", "#f5f3ff", TransactionFlow.INCOME),
    ("Food", "restaurant", "#f59e0b", "#fffbeb", TransactionFlow.EXPENSE),
    ("Shopping", "shopping_bag", "#3b82f6", "#eff6ff", TransactionFlow.EXPENSE),
    ("Rent", "home", "#ef4444", "#fef2f2", TransactionFlow.EXPENSE),
    ("Utilities", "bolt", "#06b6d4", "#ecfeff", TransactionFlow.EXPENSE),
    ("Entertainment", "sports_esports", "#ec4899", "#fdf2f8", TransactionFlow.EXPENSE),
    ("Transport", "directions_car", "#64748b", "#f1f5f9", TransactionFlow.EXPENSE),
]

# Keyword -> default category name, for suggesting a category from a title
SUGGESTION_KEYWORDS = {
    "food": "Food",
    "coffee": "Food",
    "dinner": "Food",
    "taxi": "Transport",
    "uber": "Transport",
    "grab": "Transport",
    "shopping": "Shopping",
    "clothes": "Shopping",
    "salary": "Salary",
    "bonus": "Salary",
    "rent": "Rent",
    "electric": "Utilities",
    "water": "Utilities",
    "game": "Entertainment",
}


def default_categories() -> list[Category]:
    """The built-in categories, with ids default-0 .. default-8."""
    return [
        Category(
            id=f"default-{index}",
            name=name,
            icon=icon,
            color=color,
            bg_color=bg_color,
            flow=flow,
        )
        for index, (name, icon, color, bg_color, flow) in enumerate(_DEFAULTS)
    ]


def merge_categories(user_categories: Iterable[Category]) -> list[Category]:
    """Defaults first, then the user's own categories in their given order."""
    return default_categories() + list(user_categories)


def suggest_category(title: str) -> Optional[Category]:
    """First default category whose keyword appears in `title`."""
    lowered = title.lower().strip()
    by_name = {c.name: c for c in default_categories()}
    for keyword, name in SUGGESTION_KEYWORDS.items():
        if keyword in lowered:
            return by_name[name]
    return None
