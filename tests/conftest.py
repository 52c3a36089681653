"""Shared fixtures: a small CRM-shaped set of memstore schemas."""

import random

import pytest

from connectors_sdk.memstore import MemstoreConnector


def _id():
    return {"type": "string", "x-amp-id-field": True}


def _updated():
    return {"type": "string", "format": "date-time", "x-amp-updated-field": True}


CRM_SCHEMAS = {
    "account": {
        "type": "object",
        "title": "Account",
        "properties": {
            "id": _id(),
            "name": {"type": "string", "title": "Account Name"},
            "website": {"type": "string"},
            "tier": {"type": "string", "enum": ["free", "pro", "enterprise"]},
            "employees": {"type": "integer", "minimum": 1, "maximum": 5000},
            "updated_at": _updated(),
        },
        "required": ["name"],
    },
    "contact": {
        "type": "object",
        "properties": {
            "id": _id(),
            "name": {"type": "string"},
            "email": {"type": "string", "format": "email"},
            "account_id": {
                "type": "string",
                "x-amp-association": {"associationType": "foreignKey", "targetObject": "account"},
            },
            "updated_at": _updated(),
        },
    },
    "opportunity": {
        "type": "object",
        "properties": {
            "id": _id(),
            "name": {"type": "string"},
            "contacts": {
                "type": "array",
                "items": {"type": "string"},
                "x-amp-association": {
                    "associationType": "reverseLookup",
                    "targetObject": "opportunityContact",
                    "foreignKeyField": "opportunity_id",
                },
            },
            "buyers": {
                "type": "array",
                "items": {"type": "string"},
                "x-amp-association": {
                    "associationType": "junction",
                    "targetObject": "contact",
                    "junctionObject": "opportunityContact",
                    "junctionFromField": "opportunity_id",
                    "junctionToField": "contact_id",
                },
            },
        },
    },
    "opportunityContact": {
        "type": "object",
        "properties": {
            "id": _id(),
            "opportunity_id": {
                "type": "string",
                "x-amp-association": {"associationType": "foreignKey", "targetObject": "opportunity"},
            },
            "contact_id": {"type": "string"},
        },
    },
}


@pytest.fixture
def schemas():
    return {name: dict(schema) for name, schema in CRM_SCHEMAS.items()}


@pytest.fixture
def memstore(schemas):
    return MemstoreConnector(schemas, rng=random.Random(1234))
