"""
Seed data for a fresh household: main categories, their subcategories and
the two starting accounts.
"""

from finance_tracker.models.finance import Account, AccountType, CategoryType


# (name, type, color, icon)
DEFAULT_CATEGORIES: list[tuple[str, CategoryType, str, str]] = [
    ("Alimentación", CategoryType.EXPENSE, "#FF5252", "coffee"),
    ("Vivienda", CategoryType.EXPENSE, "#AA00FF", "home"),
    ("Transporte", CategoryType.EXPENSE, "#2962FF", "car"),
    ("Entretenimiento", CategoryType.EXPENSE, "#00B0FF", "film"),
    ("Servicios", CategoryType.EXPENSE, "#00C853", "zap"),
    ("Salud", CategoryType.EXPENSE, "#d50000", "thermometer"),
    ("Salario", CategoryType.INCOME, "#00C853", "briefcase"),
    ("Inversiones", CategoryType.INCOME, "#6200EA", "trending-up"),
]

# parent name -> [(name, color, icon)]
DEFAULT_SUBCATEGORIES: dict[str, list[tuple[str, str, str]]] = {
    "Alimentación": [
        ("Compra casa", "#FF7043", "shopping-cart"),
        ("Merienda", "#FFCA28", "coffee"),
        ("Restaurantes", "#EC407A", "utensils"),
    ],
    "Transporte": [
        ("Gasolina", "#26A69A", "droplet"),
        ("Transporte público", "#5C6BC0", "bus"),
        ("Mantenimiento", "#7E57C2", "tool"),
    ],
    "Entretenimiento": [
        ("Cine", "#42A5F5", "film"),
        ("Streaming", "#AB47BC", "tv"),
        ("Salidas", "#66BB6A", "users"),
    ],
}


def default_accounts(currency: str) -> list[Account]:
    return [
        Account(
            name="Efectivo",
            type=AccountType.CASH,
            currency=currency,
            color="#00C853",
            icon="dollar-sign",
        ),
        Account(
            name="Cuenta Corriente",
            type=AccountType.BANK,
            currency=currency,
            color="#2962FF",
            icon="credit-card",
        ),
    ]
