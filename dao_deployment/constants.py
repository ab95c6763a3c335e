from pathlib import Path

import dao_deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(dao_deployment.__file__).parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYMENT_DIR / "constructor_params"
ARTIFACTS_DIR = DEPLOYMENT_DIR / "artifacts"

DEFAULT_STATE_FILENAME = "env.json"
ABI_DIRNAME = "abis"

STANDARD_STATE_JSON_FORMAT = {"indent": 4, "separators": (",", ": ")}

#
# Accounts
#

# BIP44 ethereum derivation path for persisted mnemonic accounts
ACCOUNT_PATH = "m/44'/60'/0'/0/{}"

# ether sent to a fresh operator account on local networks
LOCAL_FUNDING_AMOUNT = "1000 ether"

#
# Contracts
#

PROXY_SUFFIX = "Proxy"
PROXY_CONTRACT_TYPE = "ERC1967Proxy"
UUPS_UPGRADE_METHOD = "upgradeTo"

# EIP1967 implementation slot - https://eips.ethereum.org/EIPS/eip-1967
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC
