import json
import logging
from pathlib import Path
from typing import List, TextIO

from rpk8s.models import GeneratedResource

logit = logging.getLogger("app")

# Separates the resources when we stream them.
DOCUMENT_MARKER = "---"


def format_json(resource: GeneratedResource) -> str:
    """Return the indented JSON manifest of `resource`."""
    return json.dumps(resource.payload, indent=2)


def file_name(resource: GeneratedResource) -> str:
    return f"{resource.resourceType}-{resource.name}.json"


def save_to_file(path: Path, resources: List[GeneratedResource]) -> bool:
    """Write each resource into its own file in the `path` folder.

    Existing files with the same name are overwritten.

    """
    logit.debug(f"Saving to {path.absolute()}")
    try:
        path.mkdir(parents=True, exist_ok=True)
        for resource in resources:
            fname = path / file_name(resource)
            logit.debug(fname.name)
            fname.write_text(format_json(resource))
    except OSError as err:
        logit.error(f"cannot write resources to {path}: {err}")
        return True

    logit.debug("Done!")
    return False


def pipe_to_stream(out: TextIO, resources: List[GeneratedResource]) -> None:
    """Write all `resources` into `out`, each preceded by a document marker."""
    for resource in resources:
        print(DOCUMENT_MARKER, file=out)
        print(format_json(resource), file=out)
