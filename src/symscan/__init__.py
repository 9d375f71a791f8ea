"""symscan package root."""

from symscan.exceptions import NeverThrown, SymscanError
from symscan.invariants import never

__all__ = ["__version__", "NeverThrown", "SymscanError", "never"]

__version__ = "0.1.0"
