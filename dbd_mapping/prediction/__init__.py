"""Full-domain prediction with the selected model."""

from dbd_mapping.prediction.engine import predict_domain, prediction_interval

__all__ = ["predict_domain", "prediction_interval"]
