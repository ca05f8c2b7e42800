"""
Geometry helpers: mapping face boxes into preview space and checking
that they sit inside the target region
"""
import logging

from ..exceptions import InvalidGeometryError
from ..models.data_models import BoundingBox, FrameSize, TargetRegion

logger = logging.getLogger(__name__)


def normalize_bounding_box(
    box: BoundingBox,
    detector_size: FrameSize,
    preview_size: FrameSize
) -> BoundingBox:
    """
    Map a bounding box from detector space into preview space.

    Each axis has its own scale factor (detector dimension / preview
    dimension) and every edge is divided by the factor of its axis, so the
    detector frame may be larger or smaller than the preview.

    Args:
        box: Face bounding box in detector pixel space
        detector_size: Size of the frame the detector analysed
        preview_size: Size of the preview the target region lives in

    Returns:
        BoundingBox: The equivalent box in preview space

    Raises:
        InvalidGeometryError: If any dimension is zero or negative
    """
    if preview_size.width <= 0 or preview_size.height <= 0:
        raise InvalidGeometryError(
            f"Preview dimensions must be positive, got "
            f"{preview_size.width}x{preview_size.height}"
        )
    if detector_size.width <= 0 or detector_size.height <= 0:
        raise InvalidGeometryError(
            f"Detector dimensions must be positive, got "
            f"{detector_size.width}x{detector_size.height}"
        )

    scale_x = detector_size.width / preview_size.width
    scale_y = detector_size.height / preview_size.height

    return BoundingBox(
        left=box.left / scale_x,
        top=box.top / scale_y,
        right=box.right / scale_x,
        bottom=box.bottom / scale_y
    )


def is_contained(box: BoundingBox, region: TargetRegion) -> bool:
    """
    Check that the box lies fully inside the target region.

    Edges equal to the region's edges count as inside; there is no
    tolerance margin.
    """
    return (
        box.left >= region.left
        and box.right <= region.left + region.width
        and box.top >= region.top
        and box.bottom <= region.top + region.height
    )


def face_in_target(
    box: BoundingBox,
    detector_size: FrameSize,
    preview_size: FrameSize,
    region: TargetRegion
) -> bool:
    """Normalize the detector box and test containment in one step"""
    scaled = normalize_bounding_box(box, detector_size, preview_size)
    contained = is_contained(scaled, region)
    logger.debug(
        f"Scaled face box: left={scaled.left:.1f}, top={scaled.top:.1f}, "
        f"right={scaled.right:.1f}, bottom={scaled.bottom:.1f}, contained={contained}"
    )
    return contained
