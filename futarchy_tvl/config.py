"""Shared configuration for the futarchy TVL adapters."""
from __future__ import annotations

import os
from typing import List

CHAIN = "solana"

FUTARCHY_PROGRAM_ID = "FUTARELBfJfQ8RDGhg1wdhddq1odMAJUePHFuBYfUxKq"
DAMM_V2_PROGRAM_ID = "cpamdpZCGKUy5JxQXB4dcpGPiikHawvSWAd6mEn1sGG"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

TOKEN_PROGRAM_IDS = [TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID]

# Size filter for the Dao program scan used by the AMM vault adapter
DAO_ACCOUNT_SIZE = 1129

# Reference DAO whose vault positions anchor the offset strategy
REFERENCE_DAO = "BLkBSE96kQys7SrMioKxeMiVbeo4Ckk2Y4n1JphKxYnv"
REFERENCE_BASE_VAULT = "71naRuPZLV3T6BSk4YpNYhyb2kKWbrefDMFu2Q49e9yd"
REFERENCE_QUOTE_VAULT = "4zpwwXCcYrFivt57esQdbLfx1mAPRyDrG7Sf2RgRVc8b"

# MetaDAO treasury predates the futarchy Dao accounts and is tracked explicitly
EXTRA_TREASURIES = ["BxgkvRwqzYFWuDbRjfTYfgTtb41NaFw1aQ3129F79eBT"]

# DAMM v2 positions valued by the MetaDAO adapter
METEORA_POSITIONS = [
    "FWyVZjMDT65bDCtHTmko7xStTWw5VmHc4n2jhQLBQKbx",
    "DZc1Smsn5n7TCEDyivJs61dPzJem2661fnvYw2ZEMJFa",
    "CdBXZ7iodqp95tZuk7SUHfBn5a4PKUbjHqnx5N33zNyM",
    "272QA5FcueuVSX1UzVRFFdnfHBkULnLFARautuDw5zVG",
    "AYmr1foBaTGLTnHZhETQXjRWsi8UNvTK4uPRFHe9cd97",
    "APEYaGFGg8LYxNhNgvn5EH3mhDz62GQC3cURouSRBsVK",
]

DEFAULT_RPC_ENDPOINTS = [
    os.getenv("SOLANA_RPC_URL"),
    "https://api.mainnet-beta.solana.com",
    os.getenv("ALCHEMY_SOLANA_RPC"),
    os.getenv("ANKR_SOLANA_RPC"),
]

# Filter out None / empty values while preserving order
RPC_ENDPOINTS: List[str] = [endpoint for endpoint in DEFAULT_RPC_ENDPOINTS if endpoint]

RPC_TIMEOUT = int(os.getenv("FUTARCHY_TVL_RPC_TIMEOUT", "45"))

# Delay before every RPC call; public endpoints need a few seconds
THROTTLE_SECONDS = float(os.getenv("FUTARCHY_TVL_THROTTLE_SECONDS", "0"))
MAX_RETRIES = int(os.getenv("FUTARCHY_TVL_MAX_RETRIES", "5"))
RETRY_BASE_DELAY = float(os.getenv("FUTARCHY_TVL_RETRY_BASE_DELAY", "0.5"))
RETRY_MAX_DELAY = float(os.getenv("FUTARCHY_TVL_RETRY_MAX_DELAY", "4"))

# getMultipleAccounts accepts at most 100 keys per request
CHUNK_SIZE = int(os.getenv("FUTARCHY_TVL_CHUNK_SIZE", "100"))
