"""Header layout registry."""

from wasteplan.layout.registry import HeaderLayoutRegistry, validate_layout

__all__ = ["HeaderLayoutRegistry", "validate_layout"]
