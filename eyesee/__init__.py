from .color_transform import Adjustments, ColorMatrix, TransformFailure, apply_adjustments, apply_matrix
from .filters import FilterSelection, FilterVariant, matrix_for, next_variant
from .frame import Frame
from .overlay import Bounds, OverlayController, OverlayLayer, PreviewSurface, SurfaceUnavailable
from .processor import FrameProcessor, LatestFrameWorker
from .session import PreviewPipeline, SessionLifecycleState

__version__ = "0.1.0"
