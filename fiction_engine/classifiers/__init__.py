"""Intent classifiers: interchangeable strategies mapping free text to an intent id."""
