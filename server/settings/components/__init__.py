"""Shared helpers for settings components."""

from pathlib import Path

from decouple import AutoConfig

# Project root: the directory that contains ``server/``
BASE_DIR = Path(__file__).parent.parent.parent.parent

# Reads from environment variables first, then ``config/.env``
config = AutoConfig(search_path=BASE_DIR.joinpath('config'))
