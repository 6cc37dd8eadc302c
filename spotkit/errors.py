"""Errors raised by the data-access helpers."""

from __future__ import annotations


class OrmError(Exception):
    """Base error carrying a message and an HTTP-style status code."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class BadRequestError(OrmError):
    """The caller asked for something invalid."""

    status_code = 400


class InternalServerError(OrmError):
    """Something failed on the server side, such as a database error."""

    status_code = 500