from .geometry import bbox_from_keypoints, bbox_from_points, bbox_from_polygon, polygon_area

__all__ = [
    'bbox_from_keypoints',
    'bbox_from_points',
    'bbox_from_polygon',
    'polygon_area',
]
