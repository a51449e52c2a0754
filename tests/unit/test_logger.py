"""
Unit tests for the structured logger.
"""
import json
import logging

import pytest

from pkg.logger.logger import StructuredFormatter, get_logger, set_request_id


@pytest.fixture
def logger():
    return get_logger("tests.structured")


def test_level_field_does_not_clash(logger, caplog):
    with caplog.at_level(logging.INFO):
        logger.info("Category created", slug="phones", level=2)

    record = caplog.records[-1]
    assert record.getMessage() == "Category created"
    assert record.levelno == logging.INFO
    assert record.field_level == 2
    assert record.slug == "phones"

    data = json.loads(StructuredFormatter().format(record))
    assert data["level"] == "INFO"
    assert data["field_level"] == 2


def test_record_attribute_names_are_prefixed(logger, caplog):
    with caplog.at_level(logging.INFO):
        logger.info("Imported", msg="raw", args=[1, 2], name="Phones")

    record = caplog.records[-1]
    assert record.getMessage() == "Imported"
    assert record.field_msg == "raw"
    assert record.field_args == [1, 2]
    assert record.field_name == "Phones"


def test_formatter_emits_fields_and_request_id(logger, caplog):
    set_request_id("req-7")
    try:
        with caplog.at_level(logging.INFO):
            logger.info("Category moved", category_id="c-1", depth=3)
    finally:
        set_request_id(None)

    data = json.loads(StructuredFormatter().format(caplog.records[-1]))
    assert data["message"] == "Category moved"
    assert data["category_id"] == "c-1"
    assert data["depth"] == 3
    assert data["request_id"] == "req-7"
