# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import re
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_to_camel(key: str) -> str:
    """Converts a snake_case key to camelCase."""
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_to_snake(key: str) -> str:
    """Converts a camelCase key to snake_case."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def convert_keys(data: Any, direction: str) -> Any:
    """
    Recursively converts dictionary keys between snake_case and camelCase.

    Firestore documents and callable payloads use camelCase, while the Python
    dataclasses use snake_case.

    Args:
        data: A dict, list, or scalar value.
        direction (str): Either "snake_to_camel" or "camel_to_snake".

    Returns:
        The same structure with converted keys. Values are left untouched.
    """
    if direction == "snake_to_camel":
        convert = snake_to_camel
    elif direction == "camel_to_snake":
        convert = camel_to_snake
    else:
        raise ValueError(f"Unknown key conversion direction: {direction}")

    def _convert(value: Any) -> Any:
        if isinstance(value, dict):
            return {
                (convert(k) if isinstance(k, str) else k): _convert(v)
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [_convert(item) for item in value]
        return value

    return _convert(data)
