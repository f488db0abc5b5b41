from panchayatdb.ui.theme.loader import apply_app_theme, stylesheet_for

__all__ = [
    "apply_app_theme",
    "stylesheet_for",
]
