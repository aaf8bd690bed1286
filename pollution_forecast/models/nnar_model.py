import os
# Keras backend must be chosen before keras is imported
os.environ.setdefault("KERAS_BACKEND", "jax")

from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

import keras
import numpy as np
import pandas as pd
from keras import callbacks, layers
from sklearn.preprocessing import StandardScaler

from .base_model import LagRegressionAdapter

logger = logging.getLogger(__name__)


class NNARAdapter(LagRegressionAdapter):
    """
    Neural network autoregression using Keras (JAX backend).

    A single-hidden-layer feed-forward network on lagged target values
    (optionally calendar features and scaled covariates), averaged over
    ``n_networks`` independently initialized fits. Multi-step forecasts are
    produced recursively.
    """

    def __init__(
        self,
        lags: Sequence[int] = (1, 2, 3, 24),
        covariates: Sequence[str] = (),
        use_calendar: bool = False,
        model_id: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        calibration_method: str = "auto",
    ):
        """
        Initialize NNAR adapter.

        Hyperparameters:
            hidden_size: Hidden units (default: half the inputs plus one)
            n_networks: Networks averaged per forecast
            learning_rate: Adam learning rate
            epochs: Max training epochs
            batch_size: Training batch size
            patience: Early stopping patience on training loss
            seed: Base seed of the initial weights
        """
        super().__init__(lags, covariates, use_calendar, model_id, hyperparameters, calibration_method)
        n_inputs = len(self._input_features("target"))
        self.defaults = {
            "hidden_size": (n_inputs + 1) // 2 + 1,
            "n_networks": 1,
            "learning_rate": 0.01,
            "epochs": 50,
            "batch_size": 32,
            "patience": 5,
            "seed": 42,
        }
        for k, v in self.defaults.items():
            if k not in self.hyperparameters:
                self.hyperparameters[k] = v

    @property
    def model_type(self) -> str:
        return "nnar"

    def _build_model(self, n_inputs: int, seed: int) -> keras.Model:
        """Build the feed-forward network with initial weights drawn from ``seed``."""
        model = keras.Sequential()
        model.add(layers.Input(shape=(n_inputs,)))
        model.add(layers.Dense(
            self.hyperparameters["hidden_size"],
            activation="sigmoid",
            kernel_initializer=keras.initializers.GlorotUniform(seed=seed),
        ))
        model.add(layers.Dense(1, kernel_initializer=keras.initializers.GlorotUniform(seed=seed + 1)))

        optimizer = keras.optimizers.Adam(learning_rate=self.hyperparameters["learning_rate"])
        model.compile(optimizer=optimizer, loss="mse")
        return model

    def _fit_backend(self, X: pd.DataFrame, y: pd.Series) -> Tuple[List[keras.Model], StandardScaler, StandardScaler]:
        # Scaling statistics come from the training rows passed in
        x_scaler = StandardScaler().fit(X.to_numpy(dtype=np.float32))
        y_scaler = StandardScaler().fit(y.to_numpy(dtype=np.float32).reshape(-1, 1))
        X_np = x_scaler.transform(X.to_numpy(dtype=np.float32)).astype(np.float32)
        y_np = y_scaler.transform(y.to_numpy(dtype=np.float32).reshape(-1, 1)).astype(np.float32)

        networks = []
        for i in range(self.hyperparameters["n_networks"]):
            # Initial weights depend only on the per-network seed; batches are not shuffled
            model = self._build_model(X_np.shape[1], self.hyperparameters["seed"] + 2 * i)
            early_stopping = callbacks.EarlyStopping(
                monitor="loss",
                patience=self.hyperparameters["patience"],
                restore_best_weights=True,
            )
            history = model.fit(
                X_np, y_np,
                epochs=self.hyperparameters["epochs"],
                batch_size=self.hyperparameters["batch_size"],
                callbacks=[early_stopping],
                shuffle=False,
                verbose=0,
            )
            logger.debug(f"[{self.model_id}] network {i} final loss {history.history['loss'][-1]:.4f}")
            networks.append(model)

        return networks, x_scaler, y_scaler

    def _predict_backend(self, backend: Any, X: pd.DataFrame) -> np.ndarray:
        networks, x_scaler, y_scaler = backend
        X_np = x_scaler.transform(X.to_numpy(dtype=np.float32)).astype(np.float32)
        preds = np.mean([net.predict(X_np, verbose=0) for net in networks], axis=0)
        return y_scaler.inverse_transform(preds.reshape(-1, 1)).ravel()
