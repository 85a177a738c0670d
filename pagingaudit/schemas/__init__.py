# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#

import json
import logging
import os
from typing import Any, Dict, Optional

import jsonschema

vollog = logging.getLogger(__name__)


def load_schema(format: str) -> Optional[Dict[str, Any]]:
    """Loads the schema describing a particular snapshot format."""
    basepath = os.path.abspath(os.path.dirname(__file__))
    schema_path = os.path.join(basepath, "schema-snapshot-" + format + ".json")
    if not os.path.exists(schema_path):
        vollog.debug(f"Schema for format not found: {schema_path}")
        return None
    with open(schema_path, "r") as s:
        return json.load(s)


def validate(input: Dict[str, Any]) -> bool:
    """Validates an input snapshot based upon the format in its metadata."""
    format = input.get("metadata", {}).get("format", None)
    if not format:
        vollog.debug("No schema format defined")
        return False
    schema = load_schema(format)
    if schema is None:
        return False
    return valid(input, schema)


def valid(input: Dict[str, Any], schema: Dict[str, Any]) -> bool:
    """Validates a json schema."""
    try:
        vollog.debug("Validating JSON against schema...")
        jsonschema.validate(input, schema)
        vollog.debug("JSON validated against schema")
    except jsonschema.exceptions.ValidationError as excp:
        vollog.warning(f"Snapshot does not match its schema: {excp.message}")
        return False
    except jsonschema.exceptions.SchemaError:
        vollog.debug("Schema validation error", exc_info=True)
        return False
    return True
