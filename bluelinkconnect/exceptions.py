#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Exceptions raised by the BlueLink library."""


class BlueLinkException(Exception):
    """Raised when an unknown error occurs during API interaction."""

    def __init__(self, status):
        super().__init__(status)
        self.status = status


class BlueLinkConfigException(BlueLinkException):
    """Raised when a required setting (PIN, refresh token, device id) is missing."""


class BlueLinkAuthenticationException(BlueLinkException):
    """Raised when the token endpoint rejects the refresh or the access token stays invalid."""


class BlueLinkRequestException(BlueLinkException):
    """Raised when a request fails after all fallbacks, carries the HTTP status if one was received."""

    def __init__(self, status, http_status=None):
        super().__init__(status)
        self.http_status = http_status


class BlueLinkCommandFailedException(BlueLinkRequestException):
    """Raised when the backend reports that a vehicle command failed."""


class BlueLinkCommandTimeoutException(BlueLinkRequestException):
    """Raised when the vehicle never answered a command."""
