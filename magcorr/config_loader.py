#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration Loading Utility for MagCorr.

This module provides functions to load and validate the correlation
calculation configuration from a YAML file.
"""
import logging
import os

import yaml
from pydantic import ValidationError

from .schema import MagCorrConfig

logger = logging.getLogger(__name__)


def load_config(filepath: str) -> MagCorrConfig:
    """
    Loads and validates the configuration from a YAML file.

    Args:
        filepath (str): The path to the YAML configuration file.

    Returns:
        MagCorrConfig: The validated configuration.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ValueError: If there's an error parsing the YAML or if the content
                    does not match the schema.
    """
    logger.info(f"Loading configuration from: {filepath}")
    if not os.path.exists(filepath):
        logger.error(f"Configuration file not found: {filepath}")
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    try:
        with open(filepath, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file {filepath}: {e}")
        raise ValueError(f"Invalid YAML format in {filepath}") from e

    if not isinstance(data, dict):
        msg = f"Configuration file {filepath} does not contain a mapping."
        logger.error(msg)
        raise ValueError(msg)

    try:
        config = MagCorrConfig.model_validate(data)
    except ValidationError as e:
        logger.error(f"Invalid configuration in {filepath}: {e}")
        raise ValueError(f"Invalid configuration in {filepath}:\n{e}") from e

    logger.info("Configuration loaded and validated.")
    return config
