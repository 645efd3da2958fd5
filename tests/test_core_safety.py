"""
Tests for core/safety.py - Limit classification and posture escalation.
"""

from dataclasses import asdict
from datetime import datetime, timedelta

import pytest

from bms_core.core.measurements import (
    AlarmLevel,
    MeasurementError,
    Measurements,
    OperatingState,
)
from bms_core.core.safety import (
    DEFAULT_THRESHOLDS,
    ChannelThresholds,
    SafetyMonitor,
    classify,
)

T0 = datetime(2024, 1, 1, 12, 0, 0)


def measure(offset_s=0, voltage=3.7, current=10.0, temperature=25.0, soc=50.0):
    """Measurements at T0 + offset_s seconds."""
    return Measurements(voltage=voltage, current=current, temperature=temperature,
                        soc=soc, timestamp=T0 + timedelta(seconds=offset_s))


@pytest.fixture
def monitor():
    return SafetyMonitor()


def thresholds(channel):
    return ChannelThresholds(**DEFAULT_THRESHOLDS[channel])


class TestClassify:
    """Test suite for the pure channel classification."""

    def test_normal(self):
        """Test a value inside all bands."""
        level, message = classify(3.7, OperatingState.NORMAL, thresholds("voltage"), "voltage")

        assert level == AlarmLevel.NORMAL
        assert message == ""

    @pytest.mark.parametrize("value", [4.2, 4.5, 2.5, 1.0])
    def test_absolute_limits(self, value):
        """Test values at or beyond the absolute limits are CRITICAL."""
        level, message = classify(value, OperatingState.NORMAL, thresholds("voltage"), "voltage")

        assert level == AlarmLevel.CRITICAL
        assert "outside absolute limits" in message

    def test_warning_band(self):
        """Test values beyond the warning limits warn."""
        level, message = classify(4.12, OperatingState.NORMAL, thresholds("voltage"), "voltage")

        assert level == AlarmLevel.WARNING
        assert "approaching limits" in message
        assert message.startswith("Voltage (4.12V)")

    def test_critical_band_ignored_while_normal(self):
        """Test the critical band is only evaluated once alarmed."""
        level, message = classify(4.16, OperatingState.NORMAL, thresholds("voltage"), "voltage")

        assert level == AlarmLevel.WARNING
        assert "approaching limits" in message

    @pytest.mark.parametrize("state", [
        OperatingState.CAUTIOUS,
        OperatingState.RESTRICTED,
        OperatingState.FAIL_SAFE,
    ])
    def test_critical_band_while_alarmed(self, state):
        """Test the widened critical band applies outside NORMAL."""
        level, message = classify(86.0, state, thresholds("current"), "current")

        assert level == AlarmLevel.WARNING
        assert "at critical level" in message

    def test_hysteresis_widens_critical_band(self):
        """Test the hysteresis moves the critical boundary inwards."""
        t = thresholds("current")

        _, inside = classify(85.0, OperatingState.CAUTIOUS, t, "current")
        _, outside = classify(84.9, OperatingState.CAUTIOUS, t, "current")

        assert "at critical level" in inside
        assert "approaching limits" in outside

    @pytest.mark.parametrize("channel,values", [
        ("current", [85.0, 95.0, 85.0, 95.0]),
        ("soc", [93.0, 97.0, 93.0, 97.0]),
    ])
    def test_no_flapping_at_boundary(self, channel, values):
        """Test oscillation around a critical limit keeps a stable level."""
        t = thresholds(channel)
        for state in (OperatingState.NORMAL, OperatingState.CAUTIOUS):
            levels = {classify(v, state, t, channel)[0] for v in values}
            assert levels == {AlarmLevel.WARNING}

    def test_soc_has_no_absolute_limits(self):
        """Test SOC at the range ends only warns."""
        t = thresholds("soc")

        assert classify(0.0, OperatingState.NORMAL, t, "soc")[0] == AlarmLevel.WARNING
        assert classify(100.0, OperatingState.NORMAL, t, "soc")[0] == AlarmLevel.WARNING


class TestSafetyMonitor:
    """Test suite for the SafetyMonitor state machine."""

    def test_initial_state(self, monitor):
        """Test a new monitor starts NORMAL without counters."""
        assert monitor.operating_state == OperatingState.NORMAL
        assert monitor.fault_counters is None

    def test_clean_cycle(self, monitor):
        """Test in-range measurements stay NORMAL without alarms."""
        verdict = monitor.check_safety(measure())

        assert verdict.operating_state == OperatingState.NORMAL
        assert verdict.alarms == ()
        assert verdict.timestamp == T0
        assert monitor.fault_counters.reset_time == T0

    def test_critical_restricts(self, monitor):
        """Test a single CRITICAL alarm moves to RESTRICTED."""
        verdict = monitor.check_safety(measure(voltage=4.2))

        assert verdict.operating_state == OperatingState.RESTRICTED
        assert verdict.worst_level == AlarmLevel.CRITICAL
        assert verdict.alarms[0].parameter == "voltage"
        assert "outside absolute limits" in verdict.alarms[0].message

    def test_warning_cautious(self, monitor):
        """Test a WARNING alarm moves to CAUTIOUS."""
        verdict = monitor.check_safety(measure(temperature=41.0))

        assert verdict.operating_state == OperatingState.CAUTIOUS
        assert verdict.alarms[0].parameter == "temperature"

    def test_escalation_to_emergency(self, monitor):
        """Test three consecutive faulty cycles escalate to EMERGENCY."""
        states = [monitor.check_safety(measure(60 * i, voltage=4.2)).operating_state
                  for i in range(3)]

        assert states == [OperatingState.RESTRICTED,
                          OperatingState.RESTRICTED,
                          OperatingState.EMERGENCY]
        assert monitor.fault_counters.consecutive == 3
        assert monitor.fault_counters.voltage == 3

    def test_clean_cycle_keeps_posture(self, monitor):
        """Test a clean cycle does not de-escalate."""
        monitor.check_safety(measure(0, temperature=41.0))
        verdict = monitor.check_safety(measure(60))

        assert verdict.operating_state == OperatingState.CAUTIOUS
        assert verdict.alarms == ()

    def test_emergency_is_terminal(self, monitor):
        """Test EMERGENCY holds until reset."""
        for i in range(3):
            monitor.check_safety(measure(60 * i, voltage=4.2))

        verdict = monitor.check_safety(measure(600))

        assert verdict.operating_state == OperatingState.EMERGENCY

        monitor.reset()
        assert monitor.operating_state == OperatingState.NORMAL
        assert monitor.fault_counters is None

    def test_counter_decay(self, monitor):
        """Test counters and posture reset after the decay window."""
        for i in range(3):
            monitor.check_safety(measure(60 * i, voltage=4.2))

        verdict = monitor.check_safety(measure(3700))

        assert verdict.operating_state == OperatingState.NORMAL
        counters = monitor.fault_counters
        assert counters.voltage == 0
        assert counters.consecutive == 0
        assert counters.reset_time == T0 + timedelta(seconds=3700)

    def test_fault_counters(self, monitor):
        """Test per-channel counters persist while consecutive resets."""
        monitor.check_safety(measure(0, voltage=4.2))
        assert monitor.fault_counters.voltage == 1
        assert monitor.fault_counters.consecutive == 1

        monitor.check_safety(measure(60))
        assert monitor.fault_counters.voltage == 1
        assert monitor.fault_counters.consecutive == 0

    def test_repeated_cycle_idempotent(self, monitor):
        """Test checking the same cycle twice does not count twice."""
        m = measure(voltage=4.2)
        first = monitor.check_safety(m)
        counters = asdict(monitor.fault_counters)

        second = monitor.check_safety(m)

        assert second is first
        assert asdict(monitor.fault_counters) == counters

    def test_repeated_timestamp_new_values(self, monitor):
        """Test a new reading with a repeated timestamp is still classified."""
        first = monitor.check_safety(measure(0))

        second = monitor.check_safety(measure(0, voltage=4.3, temperature=50.0))

        assert first.operating_state == OperatingState.NORMAL
        assert second is not first
        assert second.operating_state == OperatingState.RESTRICTED
        assert {a.parameter for a in second.alarms} == {"voltage", "temperature"}
        assert monitor.fault_counters.voltage == 1

    def test_rate_of_change(self, monitor):
        """Test a rapid temperature change warns."""
        monitor.check_safety(measure(0, temperature=25.0))
        verdict = monitor.check_safety(measure(1, temperature=28.0))

        alarm = verdict.alarms[0]
        assert alarm.parameter == "rate_of_change"
        assert alarm.level == AlarmLevel.WARNING
        assert "temperature" in alarm.message
        assert alarm.value == pytest.approx(3.0)
        assert monitor.fault_counters.rate_of_change == 1
        assert verdict.operating_state == OperatingState.CAUTIOUS

    def test_rate_uses_sample_interval(self, monitor):
        """Test the same change spread over a longer interval is accepted."""
        monitor.check_safety(measure(0, temperature=25.0, voltage=3.7))
        verdict = monitor.check_safety(measure(10, temperature=28.0, voltage=3.75))

        assert verdict.alarms == ()

    def test_mapping_input(self, monitor):
        """Test mappings are validated and accepted."""
        verdict = monitor.check_safety(
            {"voltage": 3.7, "current": 0, "temperature": 25, "soc": 50})

        assert verdict.operating_state == OperatingState.NORMAL

    @pytest.mark.parametrize("data", [
        {"voltage": 3.7, "current": 0, "temperature": 25},
        {"voltage": 6.0, "current": 0, "temperature": 25, "soc": 50},
        {"voltage": 3.7, "current": 0, "temperature": "warm", "soc": 50},
        [3.7, 0, 25, 50],
    ])
    def test_invalid_input_raises(self, monitor, data):
        """Test structurally invalid input surfaces as MeasurementError."""
        with pytest.raises(MeasurementError):
            monitor.check_safety(data)
        assert monitor.operating_state == OperatingState.NORMAL

    def test_internal_error_fail_safe(self, monitor, monkeypatch, caplog):
        """Test an internal failure degrades the cycle to FAIL_SAFE."""
        def broken(m):
            raise RuntimeError("rate check failed")

        monkeypatch.setattr(monitor, "_rate_alarm", broken)

        verdict = monitor.check_safety(measure())

        assert verdict.is_fail_safe
        assert verdict.alarms[0].parameter == "system"
        assert verdict.alarms[0].level == AlarmLevel.CRITICAL
        assert "rate check failed" in caplog.text

    def test_fail_safe_escalates(self, monitor):
        """Test repeated fail-safe cycles escalate to EMERGENCY."""
        states = [monitor.fail_safe(MeasurementError("bad"), T0 + timedelta(seconds=i)).operating_state
                  for i in range(3)]

        assert states == [OperatingState.FAIL_SAFE,
                          OperatingState.FAIL_SAFE,
                          OperatingState.EMERGENCY]

    def test_threshold_override(self):
        """Test partial threshold overrides merge with the defaults."""
        monitor = SafetyMonitor({"temperature_thresholds": {"warning_high": 35.0}})

        verdict = monitor.check_safety(measure(temperature=36.0))

        assert verdict.operating_state == OperatingState.CAUTIOUS
        assert monitor.thresholds["temperature"].absolute_max == 45.0

    def test_instances_independent(self):
        """Test two monitors keep separate postures."""
        first, second = SafetyMonitor(), SafetyMonitor()
        first.check_safety(measure(voltage=4.2))

        assert first.operating_state == OperatingState.RESTRICTED
        assert second.operating_state == OperatingState.NORMAL
