"""Pick the target model out of a loaded collection."""

import logging
import os
from typing import Optional

from dmn_executor.models import LoadedModelCollection, Model

logger = logging.getLogger(__name__)


def _stem(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def select_model(
    collection: LoadedModelCollection,
    model_name: Optional[str] = None,
    main_path: Optional[str] = None,
) -> Optional[Model]:
    """
    Select the model to evaluate.

    Priority:
    1. An explicit model_name must match a model name exactly; no fallback when it does not.
    2. A model named like the main file (extension stripped), case-insensitive.
    3. The only model, when exactly one was loaded.
    4. The first model in load order.
    Returns None when nothing matches or the collection is empty.
    """
    models = collection.models
    if model_name:
        selected = next((m for m in models if m.name == model_name), None)
        if selected is None:
            logger.info("No model named %r among %s", model_name, collection.names())
        return selected

    if main_path:
        stem = _stem(main_path).lower()
        selected = next((m for m in models if m.name.lower() == stem), None)
        if selected is not None:
            return selected

    if len(models) == 1:
        return models[0]
    if not models:
        return None

    logger.warning(
        "No model matches %s; falling back to the first loaded model %r (loaded: %s)",
        main_path,
        models[0].name,
        collection.names(),
    )
    return models[0]
