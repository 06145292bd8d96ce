"""
Unit Tests for RouteClassifier
==============================

Test Coverage
-------------
- Line vs area decision and the inclusive closing threshold
- Area tiles always cover the line tiles
- Malformed and empty routes
- Degradation to line cells when polygon fill fails
"""

import h3
import pytest

from hexturf.core.config.manager import ConfigManager
from hexturf.domain.models.route import RouteType
from hexturf.modules.tiling.classifier import RouteClassifier, convert_route, haversine_distance_m
from hexturf.modules.tiling.hex_grid import HexGridTiler

SQUARE_LOOP = [
    (52.5200, 13.4000),
    (52.5200, 13.4150),
    (52.5290, 13.4150),
    (52.5290, 13.4000),
    (52.5200, 13.4000),
]

OUT_AND_BACK_OPEN = [
    (52.5200, 13.4000),
    (52.5200, 13.4150),
    (52.5290, 13.4150),
]


@pytest.fixture
def classifier() -> RouteClassifier:
    return RouteClassifier(tiler=HexGridTiler(10, 6), closing_threshold_m=200.0, fill_gaps=True)


@pytest.mark.unit
class TestHaversine:
    def test_zero_distance(self):
        assert haversine_distance_m((52.52, 13.40), (52.52, 13.40)) == 0.0

    def test_one_degree_latitude(self):
        distance = haversine_distance_m((0.0, 0.0), (1.0, 0.0))

        assert distance == pytest.approx(111_195, rel=1e-3)


@pytest.mark.unit
class TestClassify:
    def test_fewer_than_three_points_is_line(self, classifier):
        assert classifier.classify([(52.52, 13.40), (52.52, 13.40)]) is RouteType.LINE

    def test_closed_loop_is_area(self, classifier):
        assert classifier.classify(SQUARE_LOOP) is RouteType.AREA

    def test_open_route_is_line(self, classifier):
        assert classifier.classify(OUT_AND_BACK_OPEN) is RouteType.LINE

    def test_threshold_is_inclusive(self):
        # Arrange
        points = [(0.0, 0.0), (0.0, 0.01), (0.0009, 0.0)]
        gap = haversine_distance_m(points[0], points[-1])

        # Act & Assert
        assert RouteClassifier(closing_threshold_m=gap).classify(points) is RouteType.AREA
        assert RouteClassifier(closing_threshold_m=gap - 0.01).classify(points) is RouteType.LINE

    def test_threshold_read_from_config(self):
        # Arrange
        ConfigManager.override("tiling.closing_threshold_m", 5.0)
        points = [(0.0, 0.0), (0.0, 0.01), (0.0009, 0.0)]

        # Act
        classifier = RouteClassifier()

        # Assert
        assert classifier.closing_threshold_m == 5.0
        assert classifier.classify(points) is RouteType.LINE

    def test_malformed_points_are_line(self, classifier):
        assert classifier.classify([(52.52, 13.40), "x", (52.52, 13.40)]) is RouteType.LINE


@pytest.mark.unit
class TestConvertRoute:
    def test_line_route_uses_line_cells(self, classifier):
        route = classifier.convert_route(OUT_AND_BACK_OPEN)

        assert route.route_type is RouteType.LINE
        assert list(route.tile_ids) == classifier.tiler.line_cells(OUT_AND_BACK_OPEN)

    def test_area_covers_line_cells(self, classifier):
        # Arrange
        line = classifier.tiler.line_cells(SQUARE_LOOP)

        # Act
        route = classifier.convert_route(SQUARE_LOOP)

        # Assert
        assert route.route_type is RouteType.AREA
        assert set(line) <= set(route.tile_ids)
        assert len(route.tile_ids) > len(line)
        assert len(route.tile_ids) == len(set(route.tile_ids))

    def test_area_tiles_start_with_line_order(self, classifier):
        line = classifier.tiler.line_cells(SQUARE_LOOP)

        route = classifier.convert_route(SQUARE_LOOP)

        assert list(route.tile_ids[: len(line)]) == line

    def test_malformed_route_is_empty(self, classifier):
        route = classifier.convert_route([(52.52, 13.40), (None, 13.41), (52.52, 13.40)])

        assert route.is_empty
        assert route.route_type is RouteType.LINE

    def test_empty_route_is_empty(self, classifier):
        assert classifier.convert_route([]).is_empty

    def test_polygon_failure_degrades_to_line_cells(self, classifier, mocker):
        # Arrange
        mocker.patch.object(
            classifier.tiler, "polygon_cells", side_effect=ValueError("bad ring")
        )
        line = classifier.tiler.line_cells(SQUARE_LOOP)

        # Act
        route = classifier.convert_route(SQUARE_LOOP)

        # Assert
        assert route.route_type is RouteType.AREA
        assert list(route.tile_ids) == line

    def test_module_helper_uses_configured_resolution(self):
        ConfigManager.override("tiling.resolution", 9)

        route = convert_route(SQUARE_LOOP)

        assert all(h3.get_resolution(cell) == 9 for cell in route.tile_ids)
