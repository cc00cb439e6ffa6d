"""Engine — the step runner."""
