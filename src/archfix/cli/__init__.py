"""archfix command-line interface."""
