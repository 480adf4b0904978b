"""Abstract host panel protocol."""

from abc import ABC, abstractmethod


class BasePanel(ABC):
    """The surface the controller reports to and asks questions through."""

    @abstractmethod
    async def notify(self, title: str) -> None:
        """Show a short transient notification ("Push OK", "Commit Blocked")."""

    @abstractmethod
    async def confirm(
        self, title: str, message: str, *, ok: str = "OK", cancel: str = "Cancel"
    ) -> bool:
        """Ask the user a yes/no question; True means proceed."""

    @abstractmethod
    async def render(self, text: str) -> None:
        """Redraw the panel with the given full status text."""
