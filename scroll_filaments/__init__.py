"""FitzHugh-Nagumo scroll-wave simulation with filament extraction and tracking."""

from .config import FilamentConfig, load_config
from .curves import FilamentCurve, FilamentPoint, Snapshot
from .driver import run_simulation
from .extraction import FilamentExtractor
from .geometry import GeometryProcessor
from .grid import Grid
from .integrator import FHNParams, FieldIntegrator, FieldState
from .tracking import CorrespondenceTracker

__version__ = "0.1.0"
