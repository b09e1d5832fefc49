"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Shared JSON type aliases.
"""

from __future__ import annotations

from typing import TypeAlias

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
