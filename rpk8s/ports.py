from typing import Dict, List

from rpk8s.models import AssignedPort, Endpoint

# Endpoints without an explicit port receive the first free port from here on.
AUTO_PORT_START = 10000


def assign_ports(endpoints: Dict[str, Endpoint]) -> List[AssignedPort]:
    """Return the port of every endpoint, ordered by endpoint index.

    Endpoints with an explicit port always keep it. All others receive
    consecutive ports starting at `AUTO_PORT_START` in the order of their
    index, skipping over the ports that are already taken.

    The result depends on nothing but `endpoints`, ie repeated calls with the
    same input produce the same ports.

    """
    ordered = sorted(endpoints.values(), key=lambda ep: (ep.index, ep.name))
    claimed = {ep.port for ep in ordered if ep.port is not None}

    out: List[AssignedPort] = []
    candidate = AUTO_PORT_START
    for endpoint in ordered:
        if endpoint.port is not None:
            out.append(AssignedPort(endpoint=endpoint, port=endpoint.port))
            continue

        while candidate in claimed:
            candidate += 1
        claimed.add(candidate)
        out.append(AssignedPort(endpoint=endpoint, port=candidate))
    return out
