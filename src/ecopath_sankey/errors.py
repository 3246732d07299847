"""Exceptions and warning categories raised by ecopath_sankey."""


class ShapeError(ValueError):
    """Flow matrix dimensions inconsistent with the node attributes."""


class DegenerateLayoutWarning(UserWarning):
    """Layout falls back to a single column or a zero-height drawing."""


class DisplayShiftWarning(UserWarning):
    """Display values were shifted and are no longer comparable to Q."""


class DetritusDisplayWarning(UserWarning):
    """Flows to detritus are shown (experimental, breaks TL = 1 placement)."""


class FlowBalanceWarning(UserWarning):
    """Inflow and outflow of a node differ by more than the tolerance."""
