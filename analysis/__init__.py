"""Peak detection, delay estimation and pressure calibration."""
