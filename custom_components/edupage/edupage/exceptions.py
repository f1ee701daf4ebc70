"""Custom exceptions for the EduPage integration."""


class EdupageError(Exception):
	"""Base exception for EduPage errors."""
	pass


class EdupageAuthError(EdupageError):
	"""Login or session refresh failed."""
	pass


class EdupageAPIError(EdupageError):
	"""API request failed."""
	pass


class EdupageConnectionError(EdupageError):
	"""Connection to EduPage failed."""
	pass


class EdupageDataError(EdupageError):
	"""Data parsing or validation error."""
	pass


class EdupageConfigError(EdupageError):
	"""Configuration is missing or invalid."""
	pass
