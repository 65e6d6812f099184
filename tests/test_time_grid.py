import unittest

# Time grid behavior: label <-> position round-trips for both grid variants,
# sub-grids for partially active components, and position translation
# between grids (the basis for connections across sub-grids).
from composim.exceptions import NotFoundError, OutOfRangeError, ShapeMismatchError
from composim.time_grid import UniformGrid, VariableGrid, make_grid


class TestUniformGrid(unittest.TestCase):
    def setUp(self):
        self.grid = make_grid(first=2020, step=1, count=10)

    def test_round_trip_every_label(self):
        for label in self.grid.labels():
            self.assertEqual(self.grid.label_at(self.grid.position_of(label)), label)
        self.assertEqual(self.grid.position_of(2020), 1)
        self.assertEqual(self.grid.position_of(2029), 10)

    def test_five_year_step_round_trip(self):
        grid = make_grid(first=2020, step=5, count=5)
        self.assertEqual(grid.labels(), [2020, 2025, 2030, 2035, 2040])
        self.assertEqual(grid.position_of(2030), 3)
        self.assertEqual(grid.label_at(3), 2030)
        for label in grid.labels():
            self.assertEqual(grid.label_at(grid.position_of(label)), label)
        # Inside the grid's span but not on a step
        with self.assertRaises(NotFoundError):
            grid.position_of(2022)
        self.assertEqual(make_grid(first=2020, step=5, last=2040), grid)

    def test_bounds_and_length(self):
        self.assertEqual(self.grid.first_period(), 2020)
        self.assertEqual(self.grid.last_period(), 2029)
        self.assertEqual(len(self.grid), 10)
        self.assertEqual(list(self.grid)[:3], [2020, 2021, 2022])

    def test_missing_label_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.grid.position_of(2015)
        # Also a KeyError for callers that only know the builtin contract
        with self.assertRaises(KeyError):
            self.grid.position_of(2030)
        with self.assertRaises(NotFoundError):
            self.grid.position_of("2020")
        self.assertIn(2025, self.grid)
        self.assertNotIn(2019, self.grid)

    def test_label_at_out_of_range(self):
        with self.assertRaises(OutOfRangeError):
            self.grid.label_at(0)
        with self.assertRaises(OutOfRangeError):
            self.grid.label_at(11)

    def test_fractional_step(self):
        grid = make_grid(first=0.0, step=0.25, count=5)
        self.assertEqual(grid.position_of(0.75), 4)
        self.assertEqual(grid.last_period(), 1.0)
        with self.assertRaises(NotFoundError):
            grid.position_of(0.8)

    def test_make_grid_from_last(self):
        grid = make_grid(first=2020, step=5, last=2040)
        self.assertEqual(grid, UniformGrid(2020, 5, 5))
        with self.assertRaises(ValueError):
            make_grid(first=2020, step=5, last=2042)

    def test_make_grid_rejects_mixed_forms(self):
        with self.assertRaises(ValueError):
            make_grid(first=2020, step=1, count=3, labels=[1, 2, 3])
        with self.assertRaises(ValueError):
            make_grid(first=2020, step=1)
        with self.assertRaises(ValueError):
            make_grid(first=2020, step=1, count=3, last=2022)
        with self.assertRaises(ValueError):
            UniformGrid(2020, 0, 3)

    def test_equal_grids_hash_equal(self):
        self.assertEqual(UniformGrid(2020, 1, 10), self.grid)
        self.assertEqual(hash(UniformGrid(2020, 1, 10)), hash(self.grid))
        self.assertNotEqual(UniformGrid(2021, 1, 10), self.grid)


class TestVariableGrid(unittest.TestCase):
    def setUp(self):
        self.grid = make_grid(labels=[2000, 2005, 2015, 2050])

    def test_round_trip_every_label(self):
        self.assertIsInstance(self.grid, VariableGrid)
        for i, label in enumerate(self.grid.labels(), start=1):
            self.assertEqual(self.grid.position_of(label), i)
            self.assertEqual(self.grid.label_at(i), label)

    def test_missing_label(self):
        with self.assertRaises(NotFoundError):
            self.grid.position_of(2010)
        self.assertFalse(self.grid.contains(2051))

    def test_labels_must_strictly_increase(self):
        with self.assertRaises(ValueError):
            VariableGrid((2000, 2000, 2010))
        with self.assertRaises(ValueError):
            VariableGrid((2010, 2000))
        with self.assertRaises(ValueError):
            VariableGrid(())


class TestSubgridAndTranslation(unittest.TestCase):
    def test_uniform_subgrid(self):
        grid = UniformGrid(2000, 1, 10)
        sub = grid.subgrid(2003, 2005)
        self.assertEqual(sub, UniformGrid(2003, 1, 3))
        self.assertEqual(grid.subgrid(), grid)
        self.assertEqual(grid.subgrid(first=2008).labels(), [2008, 2009])
        with self.assertRaises(ValueError):
            grid.subgrid(2005, 2003)
        with self.assertRaises(NotFoundError):
            grid.subgrid(1999)

    def test_translation_into_containing_grid(self):
        grid = UniformGrid(2000, 1, 10)
        sub = grid.subgrid(2003, 2005)
        # position 1 on the sub-grid (2003) is position 4 on the full grid
        self.assertEqual(sub.translation_to(grid), 3)
        self.assertEqual(grid.translation_to(grid), 0)

    def test_translation_requires_first_period_in_target(self):
        grid = UniformGrid(2000, 1, 10)
        sub = grid.subgrid(2003, 2005)
        with self.assertRaises(ShapeMismatchError):
            grid.translation_to(sub)

    def test_translation_rejects_different_shapes(self):
        with self.assertRaises(ShapeMismatchError):
            UniformGrid(2000, 1, 10).translation_to(UniformGrid(2000, 2, 10))
        with self.assertRaises(ShapeMismatchError):
            UniformGrid(2000, 1, 3).translation_to(VariableGrid((2000, 2001, 2002)))

    def test_variable_translation_checks_alignment(self):
        full = VariableGrid((2000, 2005, 2015, 2050))
        self.assertEqual(full.subgrid(2005).translation_to(full), 1)
        # Same first label, but 2004 is missing from the target
        with self.assertRaises(ShapeMismatchError):
            VariableGrid((2000, 2002, 2004)).translation_to(VariableGrid((2000, 2002, 2003, 2004)))

    def test_shape_compatibility(self):
        self.assertTrue(UniformGrid(2000, 1, 10).is_shape_compatible(UniformGrid(2003, 1, 2)))
        self.assertFalse(UniformGrid(2000, 1, 10).is_shape_compatible(UniformGrid(2000, 5, 10)))
        self.assertTrue(VariableGrid((1, 2, 4)).is_shape_compatible(VariableGrid((1, 2, 4))))
        self.assertFalse(VariableGrid((1, 2, 4)).is_shape_compatible(VariableGrid((1, 2))))


if __name__ == "__main__":
    unittest.main()
