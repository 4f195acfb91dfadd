"""
Model Store
===========

Checkpoint management for the training service: list, create, save,
load, overwrite and delete models under Config.MODEL_DIR.

Saved models are auto-named game-model-<n>.pth. Every failure is logged
and reported through the return value; nothing is raised to the UI.
"""

import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import torch

from .model import Model
from .trainer import TrainingService
from src.utils.logger import get_logger, log_model_event

import sys
sys.path.append('../..')
from config import Config

_logger = get_logger(__name__)

MODEL_SUFFIX = '.pth'


class ModelStore:
    """
    Creates, persists and selects models for a TrainingService.

    Example:
        >>> store = ModelStore(service, config)
        >>> store.create_model()
        >>> path = store.save_model()         # models/game-model-0.pth
        >>> store.load_model(path)
    """

    def __init__(self, service: TrainingService, config: Optional[Config] = None):
        self.service = service
        self.config = config or service.config
        self.model_dir = self.config.MODEL_DIR
        self.selected: str = ''

    def _resolve(self, path: str) -> Optional[str]:
        """
        Absolute path of a checkpoint inside the model directory.

        Accepts a bare file name or a path; returns None for anything that
        escapes the model directory or is not a .pth file.
        """
        if not path:
            return None
        model_dir = os.path.realpath(self.model_dir)
        if os.path.isabs(path) or os.path.dirname(path):
            full_path = os.path.realpath(path)
        else:
            full_path = os.path.realpath(os.path.join(model_dir, path))

        try:
            inside = os.path.commonpath([model_dir, full_path]) == model_dir
        except ValueError:
            inside = False
        if not inside or not full_path.endswith(MODEL_SUFFIX):
            _logger.error(f"Invalid model path: {path}")
            return None
        return full_path

    def list_models(self) -> List[Dict[str, Any]]:
        """Saved checkpoints with size, modification time and metadata, newest first."""
        if not os.path.isdir(self.model_dir):
            return []

        models = []
        for name in os.listdir(self.model_dir):
            if not name.endswith(MODEL_SUFFIX):
                continue
            path = os.path.join(self.model_dir, name)
            modified = os.path.getmtime(path)
            info = {
                'name': name,
                'path': path,
                'size': os.path.getsize(path),
                'modified': modified,
                'modified_str': datetime.fromtimestamp(modified).strftime('%Y-%m-%d %H:%M'),
                'selected': os.path.realpath(path) == os.path.realpath(self.selected) if self.selected else False,
                'metadata': None,
            }
            try:
                checkpoint = torch.load(path, map_location='cpu', weights_only=True)
                info['metadata'] = checkpoint.get('metadata')
            except (OSError, RuntimeError, ValueError) as e:
                _logger.debug(f"Could not read metadata from {name}: {e}")
            models.append(info)

        models.sort(key=lambda m: m['modified'], reverse=True)
        return models

    def create_model(self) -> Model:
        """Build a fresh model for the configured board and hand it to the service."""
        model = Model(self.config.STATE_SIZE, self.config.ACTION_SIZE, self.config.BATCH_SIZE,
                      config=self.config, seed=self.config.SEED)
        self.service.set_model(model)
        _logger.info(f"Created new model ({self.config.STATE_SIZE} -> {self.config.ACTION_SIZE})")
        return model

    def _next_path(self) -> str:
        index = len(self.list_models())
        while True:
            path = os.path.join(self.model_dir, f"{self.config.MODEL_PREFIX}{index}{MODEL_SUFFIX}")
            if not os.path.exists(path):
                return path
            index += 1

    def save_model(self) -> Optional[str]:
        """
        Save the service's model under a new name.

        Returns:
            Path written, or None on failure
        """
        model = self.service.model
        if model is None:
            _logger.error("No model to save")
            return None

        path = self._next_path()
        try:
            model.save(path)
        except (OSError, RuntimeError) as e:
            _logger.error(f"Failed to save model: {e}")
            return None
        _logger.info(f"Model saved as {path}")
        return path

    def load_model(self, path: str = '') -> bool:
        """Load a checkpoint (default: the selected one) into the service."""
        full_path = self._resolve(path or self.selected)
        if full_path is None:
            _logger.error("No model path provided")
            return False
        if self.service.busy:
            _logger.error("Cannot load a model while the service is busy")
            return False

        try:
            model = Model.load(full_path, self.config)
        except (OSError, RuntimeError, ValueError, KeyError) as e:
            _logger.error(f"Failed to load model from {full_path}: {e}")
            return False

        if model.num_states != self.config.STATE_SIZE:
            _logger.error(
                f"Model {full_path} expects {model.num_states} inputs, "
                f"board has {self.config.STATE_SIZE}"
            )
            return False

        self.service.set_model(model)
        self.selected = full_path
        return True

    def overwrite_model(self, path: str = '') -> bool:
        """Save the service's model over an existing checkpoint."""
        full_path = self._resolve(path or self.selected)
        if full_path is None:
            _logger.error("No model path provided")
            return False
        model = self.service.model
        if model is None:
            _logger.error("No model to save")
            return False

        try:
            model.save(full_path)
        except (OSError, RuntimeError) as e:
            _logger.error(f"Failed to overwrite model at {full_path}: {e}")
            return False
        _logger.info(f"Model overwritten at {full_path}")
        return True

    def delete_model(self, path: str = '') -> bool:
        """Delete a checkpoint; clears the selection if it pointed there."""
        full_path = self._resolve(path or self.selected)
        if full_path is None:
            _logger.error("No model path provided")
            return False

        try:
            os.remove(full_path)
        except OSError as e:
            _logger.error(f"Failed to delete model at {full_path}: {e}")
            return False

        if self.selected and os.path.realpath(self.selected) == full_path:
            self.selected = ''
        log_model_event('delete', full_path)
        return True
