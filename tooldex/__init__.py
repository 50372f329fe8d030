import litellm

__version__ = "0.1.0"


# embedding calls go through litellm; keep it quiet
litellm.drop_params = True
litellm.suppress_debug_info = True
