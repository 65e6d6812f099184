import unittest

import numpy as np

# Run loop end to end: the two-component scenario, partial runs, failure
# handling, components active over part of the grid, lagged connections and
# perturbation between runs.
from composim.addressing import TimestepValue
from composim.clock import RunState
from composim.component import ComponentDef
from composim.exceptions import UnsetValueError
from composim.model import Model
from composim.time_array import has_value
from composim.time_grid import make_grid


def _doubler() -> ComponentDef:
    """A: out = period position * 2."""
    comp = ComponentDef("A")
    comp.add_variable("out", dims=("time",))

    @comp.run_timestep
    def _(p, v, d, t):
        v.out[t] = t.t * 2

    return comp


def _plus_one() -> ComponentDef:
    """B: b = out + 1, reading A.out at the same period."""
    comp = ComponentDef("B")
    comp.add_parameter("out", dims=("time",))
    comp.add_variable("b", dims=("time",))

    @comp.run_timestep
    def _(p, v, d, t):
        v.b[t] = p.out[t] + 1

    return comp


def _scenario_model() -> Model:
    m = Model(make_grid(first=2020, step=1, count=3))
    # Declared consumer-first; the build order must still run A before B
    m.add_component(_plus_one())
    m.add_component(_doubler())
    m.connect_parameter("B", "out", "A", "out")
    return m


def _values(series):
    return [value for _, value in series]


class TestScenarioRun(unittest.TestCase):
    def test_full_run(self):
        m = _scenario_model()
        m.run()
        self.assertEqual(m.execution_order, ("A", "B"))
        self.assertEqual(_values(m.time_series("B", "b")), [3.0, 5.0, 7.0])
        self.assertEqual([label for label, _ in m.time_series("B", "b")], [2020, 2021, 2022])
        self.assertEqual(m.clock.current_period(), 2022)
        self.assertIs(m.state, RunState.FINISHED)

    def test_rerun_reproduces_in_place(self):
        m = _scenario_model()
        m.run()
        instance = m.instance
        buffer = m["B", "b"].values
        m.run()
        self.assertIs(m.instance, instance)
        self.assertIs(m["B", "b"].values, buffer)
        self.assertEqual(_values(m.time_series("B", "b")), [3.0, 5.0, 7.0])

    def test_partial_runs_reset_later_periods(self):
        m = _scenario_model()
        m.run()
        m.run(ntimesteps=2)
        self.assertEqual(m.clock.current_period(), 2021)
        self.assertIs(m.state, RunState.FINISHED)
        b = m["B", "b"]
        self.assertTrue(b.is_set(TimestepValue(2021)))
        self.assertFalse(b.is_set(TimestepValue(2022)))

        m.run(stop=2020)
        self.assertEqual(m.clock.current_period(), 2020)
        self.assertFalse(b.is_set(TimestepValue(2021)))

        with self.assertRaises(ValueError):
            m.run(ntimesteps=0)

    def test_structural_change_rebuilds(self):
        m = _scenario_model()
        m.run()
        first = m.instance
        extra = ComponentDef("C")
        extra.add_variable("c", dims=("time",))
        m.add_component(extra)
        self.assertFalse(m.is_built)
        self.assertIs(m.state, RunState.NOT_STARTED)
        m.run()
        self.assertIsNot(m.instance, first)
        self.assertEqual(m.execution_order, ("A", "B", "C"))


class TestFailures(unittest.TestCase):
    def test_component_error_propagates_and_marks_failed(self):
        comp = ComponentDef("F")
        comp.add_variable("x", dims=("time",))

        @comp.run_timestep
        def _(p, v, d, t):
            if t.gettime() == 2021:
                raise RuntimeError("boom")
            v.x[t] = 1.0

        m = Model(make_grid(first=2020, step=1, count=3))
        m.add_component(comp)
        with self.assertLogs("composim.model_instance", level="ERROR") as logs:
            with self.assertRaisesRegex(RuntimeError, "boom"):
                m.run()
        self.assertIs(m.state, RunState.FAILED)
        self.assertEqual(m.clock.current_period(), 2021)
        # Earlier writes are kept for inspection
        self.assertEqual(m["F", "x"][TimestepValue(2020)], 1.0)
        self.assertTrue(any("'F'" in line and "2021" in line for line in logs.output))

    def test_reading_an_uncomputed_period_fails(self):
        early = ComponentDef("early")
        early.add_parameter("ahead", dims=("time",))
        early.add_variable("y", dims=("time",))

        @early.run_timestep
        def _(p, v, d, t):
            v.y[t] = p.ahead[t]

        m = Model(make_grid(first=2020, step=1, count=3))
        m.add_component(early)
        m.add_component(_doubler())
        # Lead of one period: reads A.out one period ahead, which A has not computed yet
        m.connect_parameter("early", "ahead", "A", "out", offset=1)
        with self.assertRaises(UnsetValueError) as cm:
            m.run()
        self.assertEqual(cm.exception.label, 2021)
        self.assertIs(m.state, RunState.FAILED)


class TestLagsAndSubgrids(unittest.TestCase):
    def test_lagged_connection_with_has_value(self):
        lag = ComponentDef("L")
        lag.add_parameter("prev", dims=("time",))
        lag.add_variable("y", dims=("time",))

        @lag.run_timestep
        def _(p, v, d, t):
            v.y[t] = p.prev[t] if has_value(p.prev, t) else 0.0

        m = Model(make_grid(first=2020, step=1, count=3))
        m.add_component(lag)
        m.add_component(_doubler())
        m.connect_parameter("L", "prev", "A", "out", offset=-1)
        m.run()
        # Lagged edges do not order components; declaration order is kept
        self.assertEqual(m.execution_order, ("L", "A"))
        self.assertEqual(_values(m.time_series("L", "y")), [0.0, 2.0, 4.0])

    def test_feedback_through_a_lag(self):
        stock = ComponentDef("stock")
        stock.add_parameter("inflow", dims=("time",))
        stock.add_variable("level", dims=("time",))

        @stock.run_timestep
        def _(p, v, d, t):
            v.level[t] = 10.0 if t.is_first() else v.level[t.prev()] + p.inflow[t]

        flow = ComponentDef("flow")
        flow.add_parameter("level", dims=("time",))
        flow.add_parameter("rate", default=0.1)
        flow.add_variable("inflow", dims=("time",))

        @flow.run_timestep
        def _(p, v, d, t):
            v.inflow[t] = p.level[t] * p.rate

        m = Model(make_grid(first=2020, step=1, count=3))
        m.add_component(stock)
        m.add_component(flow)
        m.connect_parameter("flow", "level", "stock", "level")
        m.connect_parameter("stock", "inflow", "flow", "inflow", offset=-1)
        m.run()
        np.testing.assert_allclose(_values(m.time_series("stock", "level")), [10.0, 11.0, 12.1])

    def test_component_on_part_of_the_grid(self):
        calls = []
        part = ComponentDef("S")
        part.add_parameter("out", dims=("time",))
        part.add_variable("y", dims=("time",))

        @part.run_timestep
        def _(p, v, d, t):
            calls.append(t.gettime())
            v.y[t] = p.out[t] + t.gettime()

        m = Model(make_grid(first=2020, step=1, count=5))
        m.add_component(_doubler())
        m.add_component(part, first=2022, last=2023)
        m.connect_parameter("S", "out", "A", "out")
        m.run()
        self.assertEqual(calls, [2022, 2023])
        # A.out at 2022 is 3 * 2
        self.assertEqual(m.time_series("S", "y"), [(2022, 2028.0), (2023, 2031.0)])
        self.assertEqual(m.clock.current_period(), 2024)


class TestNamespacesAndHooks(unittest.TestCase):
    def test_init_hook_and_scalar_variables(self):
        acc = ComponentDef("acc")
        acc.add_parameter("step_size", default=2.0)
        acc.add_variable("total")

        @acc.init
        def _(p, v, d):
            v.total = 0.0

        @acc.run_timestep
        def _(p, v, d, t):
            v.total = v.total + p.step_size

        m = Model(make_grid(first=2020, step=1, count=4))
        m.add_component(acc)
        m.run()
        self.assertEqual(m["acc", "total"], 8.0)
        m.run()
        self.assertEqual(m["acc", "total"], 8.0)

    def test_dimensions_namespace(self):
        seen = {}
        comp = ComponentDef("E")
        comp.add_parameter("weights", dims=("regions",))
        comp.add_variable("e", dims=("time", "regions"))

        @comp.run_timestep
        def _(p, v, d, t):
            seen["time"] = list(d.time)
            seen["regions"] = list(d.regions)
            for i in range(len(d.regions)):
                v.e[t, i] = p.weights[i] * t.t

        m = Model(make_grid(first=2020, step=1, count=3))
        m.set_dimension("regions", ["USA", "EU"])
        m.add_component(comp)
        m.set_parameter("E", "weights", [1.0, 10.0])
        m.run()
        self.assertEqual(seen, {"time": [2020, 2021, 2022], "regions": ["USA", "EU"]})
        np.testing.assert_array_equal(m["E", "e"].values, [[1.0, 10.0], [2.0, 20.0], [3.0, 30.0]])

    def test_parameters_are_read_only(self):
        m = _scenario_model()
        mi = m.instance
        with self.assertRaises(TypeError):
            mi.component("B").p.out = 1.0
        with self.assertRaises(TypeError):
            mi.component("B").v.b = 1.0
        with self.assertRaises(AttributeError):
            mi.component("B").p.missing

    def test_component_without_run_timestep_is_a_no_op(self):
        m = Model(make_grid(first=2020, step=1, count=2))
        idle = ComponentDef("idle")
        idle.add_variable("x", dims=("time",))
        m.add_component(idle)
        m.run()
        self.assertIs(m.state, RunState.FINISHED)
        self.assertFalse(m["idle", "x"].is_set(TimestepValue(2020)))


class TestUpdateBetweenRuns(unittest.TestCase):
    def _model(self) -> Model:
        comp = ComponentDef("G")
        comp.add_parameter("rate")
        comp.add_parameter("base", dims=("time",))
        comp.add_variable("y", dims=("time",))

        @comp.run_timestep
        def _(p, v, d, t):
            v.y[t] = p.base[t] * p.rate

        m = Model(make_grid(first=2020, step=1, count=3))
        m.add_component(comp)
        m.set_parameter("G", "rate", 1.0)
        m.set_parameter("G", "base", [1.0, 2.0, 3.0])
        return m

    def test_update_in_place_without_rebuild(self):
        m = self._model()
        m.run()
        instance = m.instance
        m.update_external_parameter("G", "rate", 2.0)
        m.update_external_parameter("G", "base", [3.0, 2.0, 1.0])
        m.run()
        self.assertIs(m.instance, instance)
        self.assertEqual(_values(m.time_series("G", "y")), [6.0, 4.0, 2.0])

    def test_update_rejects_wrong_shape(self):
        m = self._model()
        m.run()
        with self.assertRaises(ValueError):
            m.update_external_parameter("G", "base", [1.0, 2.0])
        # Definition untouched by the failed update
        self.assertEqual(m.md.external_parameters()[("G", "base")], [1.0, 2.0, 3.0])

    def test_leftover_update(self):
        comp = ComponentDef("H")
        comp.add_parameter("discount")
        comp.add_variable("y")

        @comp.run_timestep
        def _(p, v, d, t):
            v.y = p.discount

        m = Model(make_grid(first=2020, step=1, count=2))
        m.add_component(comp)
        m.set_leftover_parameters({"discount": 0.03})
        m.run()
        m.update_leftover_parameter("discount", 0.05)
        m.run()
        self.assertEqual(m["H", "y"], 0.05)
        with self.assertRaises(KeyError):
            m.update_leftover_parameter("discont", 0.05)


if __name__ == "__main__":
    unittest.main()
