"""Learn Buddy: learning task list with AI-assisted planning."""

__version__ = "0.1.0"
