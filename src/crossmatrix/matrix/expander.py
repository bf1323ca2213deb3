"""Matrix expansion.

Cross-products the configured axes into matrix entries. Expansion is
deterministic: entries are produced in axis order, then value order, so job
naming is reproducible across runs.
"""

from dataclasses import dataclass
from itertools import product
from typing import Dict, List, Sequence, Tuple

from ..config.matrix_config import Axis
from ..errors import EmptyAxisError, MatrixConfigError


@dataclass(frozen=True)
class MatrixEntry:
    """One combination of axis values, as ordered (axis, value) pairs."""

    values: Tuple[Tuple[str, str], ...]

    def as_dict(self) -> Dict[str, str]:
        return dict(self.values)

    def get(self, axis: str) -> str:
        return self.as_dict()[axis]

    @property
    def label(self) -> str:
        """Human-readable identity, e.g. '(os=ubuntu-latest, toolchain=stable)'."""
        return "(" + ", ".join(f"{axis}={value}" for axis, value in self.values) + ")"


class MatrixExpander:
    """
    Expands axes into the full Cartesian product.

    Example usage:
        expander = MatrixExpander([
            Axis("os", ("linux", "windows")),
            Axis("toolchain", ("nightly", "stable")),
        ])
        entries = expander.expand()
        # 4 entries: linux/nightly, linux/stable, windows/nightly, windows/stable
    """

    def __init__(self, axes: Sequence[Axis]):
        self.axes = tuple(axes)

    def validate(self) -> None:
        """
        Validate the axes before expansion.

        Raises:
            MatrixConfigError: If there are no axes, an axis name repeats,
                or a value repeats within one axis
            EmptyAxisError: If an axis has no values
        """
        if not self.axes:
            raise MatrixConfigError("No axes configured; the matrix would produce no jobs")

        seen = set()
        for axis in self.axes:
            if axis.name in seen:
                raise MatrixConfigError(f"Axis '{axis.name}' is declared more than once")
            seen.add(axis.name)

            if not axis.values:
                raise EmptyAxisError(axis.name)

            duplicates = sorted({v for v in axis.values if axis.values.count(v) > 1})
            if duplicates:
                raise MatrixConfigError(
                    f"Axis '{axis.name}' repeats values: {', '.join(duplicates)}"
                )

    def expand(self) -> List[MatrixEntry]:
        """
        Produce one entry per combination of axis values.

        Returns:
            Entries in axis order, then value order

        Raises:
            MatrixConfigError: If the axes are invalid (see validate)
        """
        self.validate()
        names = [axis.name for axis in self.axes]
        return [
            MatrixEntry(values=tuple(zip(names, combination)))
            for combination in product(*(axis.values for axis in self.axes))
        ]

