import json
import os
from typing import Union

# ===================================================================
# Terraform constants
# ===================================================================

DEFAULT_STATE_FILENAME = 'terraform.tfstate'
SUPPORTED_STATE_VERSIONS = (3, 4)

# ===================================================================
# Type
# ===================================================================

PathType = Union[str, os.PathLike]
InstanceKey = Union[None, int, str]


# ===================================================================
# utils
# ===================================================================

def json_dump(value, path: PathType):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(value, f, indent=2, sort_keys=True)
