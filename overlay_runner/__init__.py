from .dispatcher import DispatchError, ImageOutcome, WorkerDispatcher, default_worker_count
from .transformer import LabelStyle, TransformError, transform_image

__all__ = [
    "DispatchError",
    "ImageOutcome",
    "WorkerDispatcher",
    "default_worker_count",
    "LabelStyle",
    "TransformError",
    "transform_image",
]
