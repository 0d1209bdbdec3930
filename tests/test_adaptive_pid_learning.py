"""Learning engine: histories, plant estimation, Cohen-Coon tuning and adaptation."""

import pytest

from custom_components.smart_thermostat.learning import (
    LearningEngine,
    PerformanceHistory,
    TemperatureHistory,
    TemperatureSample,
    ThermalCharacteristics,
    cohen_coon_gains,
    estimate_thermal_characteristics,
)
from custom_components.smart_thermostat.pid_core import PIDGains

T0 = 1_700_000_000.0

# Step response sampled every minute: dead time ~3 min, settles 2°C higher
STEP_RESPONSE = [20.0, 20.0, 20.0, 20.3, 20.8, 21.3, 21.6, 21.8, 21.9, 22.0] + [22.0] * 25


def _samples(temps, period=60.0):
    return [TemperatureSample(temp=t, timestamp=T0 + i * period) for i, t in enumerate(temps)]


# ------------------------------
# Histories
# ------------------------------


def test_temperature_history_evicts_by_age():
    """Temperature history keeps only the last hour."""
    history = TemperatureHistory(window_s=3600)
    for i in range(90):
        history.append(20.0, T0 + i * 60)

    samples = history.samples()
    assert len(history) == 60
    assert samples[-1].timestamp - samples[0].timestamp < 3600


def test_temperature_history_resets_when_time_goes_back():
    """A sample older than the last one restarts the history."""
    history = TemperatureHistory()
    history.append(20.0, T0)
    history.append(20.1, T0 + 60)
    history.append(20.2, T0 + 30)
    assert [s.temp for s in history] == [20.2]


def test_temperature_history_load_skips_bad_entries():
    """Malformed persisted samples are skipped."""
    history = TemperatureHistory()
    history.load_state([{"temp": 20.0, "timestamp": T0}, {"temp": "x"}, 42, {"temp": 20.5, "timestamp": T0 + 60}])
    assert [s.temp for s in history] == [20.0, 20.5]


def test_performance_history_evicts_by_count():
    """Performance history keeps the last 1000 errors but counts all of them."""
    history = PerformanceHistory(capacity=1000)
    for i in range(1200):
        history.append(float(i))

    assert len(history) == 1000
    assert history.total_count == 1200
    assert history.recent(3) == [1197.0, 1198.0, 1199.0]


# ------------------------------
# Estimation and tuning
# ------------------------------


def test_estimate_step_response():
    """Time constant and dead time come from the 63.2% and 10% crossings."""
    characteristics = estimate_thermal_characteristics(_samples(STEP_RESPONSE))

    # 10% of 2°C reached at index 3, 63.2% at index 5
    assert characteristics.dead_time == pytest.approx(180.0)
    assert characteristics.time_constant == pytest.approx(300.0)
    assert characteristics.excitation == pytest.approx(2.0)
    assert characteristics.conclusive


def test_estimate_falling_response():
    """A falling response is estimated like a rising one."""
    falling = [40.0 - t for t in STEP_RESPONSE]
    characteristics = estimate_thermal_characteristics(_samples(falling))
    assert characteristics.dead_time == pytest.approx(180.0)
    assert characteristics.time_constant == pytest.approx(300.0)


def test_estimate_inconclusive_without_excitation():
    """Too little temperature movement gives no estimate and no gains."""
    flat = [20.0 + 0.01 * (i % 3) for i in range(40)]
    characteristics = estimate_thermal_characteristics(_samples(flat))
    assert not characteristics.conclusive
    assert cohen_coon_gains(characteristics) is None


def test_estimate_inconclusive_with_few_samples():
    """Fewer than ten samples give no estimate."""
    assert estimate_thermal_characteristics(_samples(STEP_RESPONSE[:9])) == ThermalCharacteristics()


def test_cohen_coon_slow_plant():
    """Slow plant regime gives conservative, clamped gains."""
    gains = cohen_coon_gains(ThermalCharacteristics(time_constant=300.0, dead_time=180.0))
    assert gains.kp == pytest.approx(1.5)
    assert gains.ki == pytest.approx(1.5 / (3.3 * 180.0))
    assert gains.kd == 2.0  # clamped


def test_cohen_coon_fast_and_moderate_plants():
    """Fast and moderate regimes use their own formulas."""
    fast = cohen_coon_gains(ThermalCharacteristics(time_constant=1000.0, dead_time=50.0))
    assert fast.kp == 5.0
    assert fast.ki == pytest.approx(27.0 / (2.5 * 50.0))

    moderate = cohen_coon_gains(ThermalCharacteristics(time_constant=1000.0, dead_time=200.0))
    assert moderate.kp == 5.0
    assert moderate.ki == pytest.approx(7.0 / (2.1 * 200.0))


# ------------------------------
# Learning engine
# ------------------------------


def test_learning_completes_with_tuned_gains():
    """Learning completes with tuned gains once thirty samples are available."""
    engine = LearningEngine("test", hysteresis=0.2)
    gains = PIDGains()

    for i, temp in enumerate(STEP_RESPONSE[:29]):
        engine.record(temp, T0 + i * 60)
        assert engine.learn(gains, T0 + i * 60) is gains
    assert engine.is_learning
    assert engine.state == "learning"

    engine.record(STEP_RESPONSE[29], T0 + 29 * 60)
    tuned = engine.learn(gains, T0 + 29 * 60)

    assert tuned.kp == pytest.approx(1.5)
    assert engine.learning_complete
    assert engine.state == "running"


def test_learning_times_out_after_one_hour():
    """Learning gives up after one hour and keeps the current gains."""
    engine = LearningEngine("test", hysteresis=0.2)
    gains = PIDGains(kp=2.0, ki=0.01, kd=0.3)

    for minutes in range(0, 61, 10):
        engine.record(20.0, T0 + minutes * 60)
        assert engine.learn(gains, T0 + minutes * 60) is gains
    assert engine.is_learning

    engine.record(20.0, T0 + 3601)
    assert engine.learn(gains, T0 + 3601) is gains
    assert engine.learning_complete
    assert not engine.learning_phase


def test_learning_disabled_starts_running():
    """With learning disabled the engine starts in the running state."""
    engine = LearningEngine("test", hysteresis=0.2, learning_enabled=False)
    assert engine.state == "running"
    assert not engine.is_learning


def _feed(engine, errors, gains):
    for error in errors:
        gains = engine.track_performance(error, gains)
    return gains


def test_adaptation_speeds_up_sluggish_loop():
    """A persistent error raises Kp on the hundredth sample."""
    engine = LearningEngine("test", hysteresis=0.2, learning_enabled=False)
    gains = PIDGains(kp=1.0, ki=0.02, kd=0.5)

    gains = _feed(engine, [1.0] * 99, gains)
    assert gains.kp == 1.0

    gains = engine.track_performance(1.0, gains)
    assert gains.kp == pytest.approx(1.02)
    assert gains.kd == 0.5


def test_adaptation_damps_oscillation():
    """Oscillating errors damp Kp and Kd."""
    engine = LearningEngine("test", hysteresis=0.2, learning_enabled=False)
    gains = _feed(engine, [0.0, 2.0] * 50, PIDGains(kp=1.0, ki=0.02, kd=0.5))

    assert gains.kp == pytest.approx(0.95)
    assert gains.kd == pytest.approx(0.475)
    assert gains.ki == 0.02


def test_adaptation_leaves_good_loop_alone():
    """Small steady errors leave the gains unchanged."""
    engine = LearningEngine("test", hysteresis=0.2, learning_enabled=False)
    start = PIDGains(kp=1.0, ki=0.02, kd=0.5)
    assert _feed(engine, [0.1] * 100, start) == start


def test_adaptation_period_holds_once_buffer_is_full():
    """Adaptation still runs every hundredth sample after the buffer is full."""
    engine = LearningEngine("test", hysteresis=0.2, learning_enabled=False)
    gains = _feed(engine, [0.1] * 1000, PIDGains())

    for _ in range(99):
        before = gains
        gains = engine.track_performance(1.0, gains)
        assert gains == before

    gains = engine.track_performance(1.0, gains)
    assert gains.kp > 1.0


def test_reset_restarts_learning():
    """reset() clears histories and restarts learning."""
    engine = LearningEngine("test", hysteresis=0.2)
    engine.record(20.0, T0)
    engine.learn(PIDGains(), T0)
    engine.learning_complete = True

    engine.reset()

    assert engine.is_learning
    assert engine.learning_start is None
    assert len(engine.temperature_history) == 0
