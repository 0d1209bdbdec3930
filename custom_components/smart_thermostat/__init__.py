"""Smart Thermostat: adaptive PID control engine for setpoint-driven thermostats."""
