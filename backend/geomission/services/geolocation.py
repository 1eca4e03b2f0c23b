"""
위치 계산 유틸리티 함수
Haversine 공식을 사용하여 두 좌표 간의 거리를 계산합니다.
"""

import math

from ..schemas.geo import Coordinate

# 지구 반경 (미터)
EARTH_RADIUS_METERS = 6371000


def calculate_distance(origin: Coordinate, target: Coordinate) -> float:
    """
    Haversine 공식을 사용하여 두 지점 간의 거리를 계산합니다.

    Args:
        origin: 첫 번째 지점 (사용자 위치 등)
        target: 두 번째 지점 (보드 좌표 등)

    Returns:
        두 지점 간의 거리 (미터 단위)
    """
    phi1 = math.radians(origin.latitude)
    phi2 = math.radians(target.latitude)
    delta_phi = math.radians(target.latitude - origin.latitude)
    delta_lambda = math.radians(target.longitude - origin.longitude)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def is_within_radius(origin: Coordinate, target: Coordinate, radius_meters: float) -> bool:
    """사용자 위치가 지정된 반경 내에 있는지 확인합니다."""
    return calculate_distance(origin, target) <= radius_meters
