"""ACME JSON fields."""
import datetime
from typing import Any

import josepy as jose
import pyrfc3339


class RFC3339Field(jose.Field):
    """RFC3339 field encoder/decoder.

    Handles decoding/encoding between RFC3339 strings and aware (not
    naive) `datetime.datetime` objects
    (e.g. ``datetime.datetime.now(pytz.utc)``).

    """

    @classmethod
    def default_encoder(cls, value: datetime.datetime) -> str:
        return pyrfc3339.generate(value)

    @classmethod
    def default_decoder(cls, value: str) -> datetime.datetime:
        try:
            return pyrfc3339.parse(value)
        except ValueError as error:
            raise jose.DeserializationError(error)


class Resource(jose.Field):
    """Resource type field.

    Every draft ACME request names the resource it is addressed to
    (``new-reg``, ``reg``, ``new-authz``, ``challenge``, ``new-cert``).

    """

    def __init__(self, resource_type: str, *args: Any, **kwargs: Any) -> None:
        self.resource_type = resource_type
        kwargs['default'] = resource_type
        super().__init__('resource', *args, **kwargs)

    def decode(self, value: Any) -> Any:
        if value != self.resource_type:
            raise jose.DeserializationError(
                'Wrong resource type: {0} instead of {1}'.format(
                    value, self.resource_type))
        return value


def rfc3339(json_name: str, omitempty: bool = False) -> Any:
    """Generates a type-friendly RFC3339 field."""
    return RFC3339Field(json_name, omitempty=omitempty)


def resource(resource_type: str) -> Any:
    """Generates a type-friendly Resource field."""
    return Resource(resource_type)
