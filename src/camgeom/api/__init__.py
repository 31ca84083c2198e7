from camgeom.api.model_io import load_model, save_model

__all__ = [
    "load_model",
    "save_model",
]
