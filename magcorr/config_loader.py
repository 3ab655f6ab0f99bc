#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration Loading Utility for MagCorr.

This module provides functions to load and validate the correlation
settings and magnetic site data from a YAML file.
"""
import logging
from typing import List

import numpy as np
import yaml
from pydantic import ValidationError

try:
    from .records import MagneticSite
    from .schema import MagCorrConfig, SiteConfig
except ImportError:
    from records import MagneticSite
    from schema import MagCorrConfig, SiteConfig

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
                    does not match the configuration schema.
    """
    logger.info(f"Loading configuration from: {filepath}")
    try:
        with open(filepath, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.error(f"Configuration file not found: {filepath}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file {filepath}: {e}")
        raise ValueError(f"Invalid YAML format in {filepath}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Top level of configuration file {filepath} must be a mapping."
        logger.error(msg)
        raise ValueError(msg)

    try:
        config = MagCorrConfig.model_validate(data)
    except ValidationError as e:
        logger.error(f"Invalid configuration in {filepath}: {e}")
        raise ValueError(f"Invalid configuration in {filepath}:\n{e}") from e

    logger.info(
        f"Configuration loaded: {len(config.sites)} magnetic sites, "
        f"T = {config.correlation.temperature} K."
    )
    return config


def site_from_config(site_cfg: SiteConfig) -> MagneticSite:
    u = site_cfg.u_vector()
    if u is not None:
        return MagneticSite(
            pos=site_cfg.pos, spin_mag=site_cfg.spin_S, u=u, u_conj=np.conj(u)
        )
    return MagneticSite.from_direction(
        site_cfg.pos, site_cfg.spin_S, site_cfg.magmom_classical
    )


def sites_from_config(config: MagCorrConfig) -> List[MagneticSite]:
    return [site_from_config(site_cfg) for site_cfg in config.sites]
