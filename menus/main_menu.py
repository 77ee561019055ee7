import questionary

MAIN_MENU_CHOICES = [
    "Account Menu",
    "Library Menu",
    "Config Menu",
    "Exit",
]


def main_menu(status: str = "") -> str:
    """Top-level menu; returns the selected entry."""
    title = "🎧 Spotify Session — Main Menu"
    if status:
        title = f"{title} [{status}]"
    choice = questionary.select(title, choices=MAIN_MENU_CHOICES).ask()
    return choice or "Exit"
