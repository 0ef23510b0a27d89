"""
AquaHub water parameter alerting.

    alert_engine.py → AlertEvaluator (thresholds vs. a new reading)
    lifecycle.py    → AlertLifecycle (acknowledge / resolve)
    forecast.py     → predict_series (linear trend + confidence)
    services.py     → AlertService, PredictionService (wiring, locks, transactions)
"""
