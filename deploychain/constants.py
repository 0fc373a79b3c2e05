from pathlib import Path

import deploychain

#
# Filesystem
#

DEPLOYCHAIN_DIR = Path(deploychain.__file__).parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYCHAIN_DIR / "constructor_params"
MANIFESTS_DIR = Path("deployments")

MANIFEST_SUFFIX = ".json"
PARTIAL_MANIFEST_SUFFIX = ".partial.json"

#
# Networks
#

LOCAL_NETWORKS = ["local"]

#
# Deployment
#

# attempts per toolchain operation (deploy and verify alike)
DEFAULT_MAX_ATTEMPTS = 2

ZERO_ADDRESS = "0x" + "0" * 40

#
# Toolchains
#

APE = "ape"
FORGE = "forge"

SUPPORTED_TOOLCHAINS = [APE, FORGE]

ETHERSCAN_API_KEY_ENVVAR = "ETHERSCAN_API_KEY"
RPC_URL_ENVVAR = "RPC_URL"
FORGE_ACCOUNT_ENVVAR = "FORGE_ACCOUNT"
FORGE_ARTIFACTS_DIR = Path("out")
