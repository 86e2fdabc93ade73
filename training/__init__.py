# =============================================================================
# Training Module
# =============================================================================
"""
Compile/fit orchestration for model definitions.

Exports:
- ModelTrainer: Async train + evaluate + predict
- train_model: Compile a definition and train it on a Dataset
- TrainingConfig + presets (get_recommended_config)
- Callback hooks and EarlyStoppingController
- Optimizer factory and metric helpers
"""

from training.config import (
    TrainingConfig,
    validate_training_config,
    get_recommended_config,
    load_training_config,
)
from training.optimizers import create_optimizer, create_optimizer_with_config, OptimizerConfig
from training.callbacks import (
    TrainingCallbacks,
    CallbackList,
    EarlyStoppingController,
    combine_callbacks,
    create_default_callbacks,
    create_early_stopping_callback,
    create_metrics_logging_callback,
    create_progress_callback,
)
from training.metrics import (
    calculate_final_metrics,
    find_best_epoch,
    detect_overfitting,
    analyze_training_progress,
)
from training.results import StoppedReason, TrainingProgress, TrainingResult
from training.trainer import ModelTrainer, TrainerState, train_model

__all__ = [
    # Config
    'TrainingConfig',
    'validate_training_config',
    'get_recommended_config',
    'load_training_config',

    # Optimizers
    'create_optimizer',
    'create_optimizer_with_config',
    'OptimizerConfig',

    # Callbacks
    'TrainingCallbacks',
    'CallbackList',
    'EarlyStoppingController',
    'combine_callbacks',
    'create_default_callbacks',
    'create_early_stopping_callback',
    'create_metrics_logging_callback',
    'create_progress_callback',

    # Metrics
    'calculate_final_metrics',
    'find_best_epoch',
    'detect_overfitting',
    'analyze_training_progress',

    # Results
    'StoppedReason',
    'TrainingProgress',
    'TrainingResult',

    # Trainer
    'ModelTrainer',
    'TrainerState',
    'train_model',
]
