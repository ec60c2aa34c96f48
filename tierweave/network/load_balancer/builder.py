from __future__ import annotations

from typing import Iterable

from tierweave.core import DeferredValue, ResourceGraph, debug, scoped_name
from tierweave.core.exceptions import BadRequestError

from tierweave.network.security_group import (
    ANYWHERE,
    SecurityGroupBuilder,
    all_traffic_to,
    tcp_from_cidr,
    tcp_from_group,
)
from ._models import ListenerSpec, LoadBalancerSpec, TargetGroupSpec


class LoadBalancerBuilder:
    graph: ResourceGraph

    def __init__(self, graph: ResourceGraph):
        self.graph = graph

    def build(
        self,
        name: str,
        vpc_id: str | DeferredValue,
        listeners: Iterable[ListenerSpec],
        public_subnets: list[str],
    ) -> LoadBalancerSpec:
        listeners = list(listeners)
        if not listeners:
            raise BadRequestError(f"Load balancer {name} has no listeners")
        if not public_subnets:
            raise BadRequestError(
                f"Load balancer {name} needs at least one public subnet"
            )
        groups = SecurityGroupBuilder(self.graph)
        lb_group = groups.build(
            name=scoped_name(name, "lb-sg"),
            vpc_id=vpc_id,
            ingress=[
                tcp_from_cidr(listener.port, ANYWHERE, "public listener")
                for listener in listeners
            ],
            egress=[all_traffic_to()],
            description=f"Load balancer of {name}",
        )
        fleet_group = groups.build(
            name=scoped_name(name, "lb-targets"),
            vpc_id=vpc_id,
            ingress=[
                tcp_from_group(listener.port, lb_group.id, "load balancer")
                for listener in listeners
            ],
            description=f"Traffic from the load balancer of {name}",
        )
        lb = self.graph.declare(
            "load_balancer",
            scoped_name(name, "lb"),
            {
                "name": f"{name}-lb",
                "type": "application",
                "scheme": "internet-facing",
                "subnets": list(public_subnets),
                "security_groups": [lb_group.id],
            },
        )
        target_groups = []
        for listener in listeners:
            target_group = self.graph.declare(
                "target_group",
                scoped_name(name, f"tg-{listener.port}"),
                {
                    "port": listener.port,
                    "protocol": listener.protocol.value,
                    "vpc_id": vpc_id,
                    "health_check_path": listener.health_check_path,
                },
            )
            listener_node = self.graph.declare(
                "listener",
                scoped_name(name, f"listener-{listener.port}"),
                {
                    "load_balancer_arn": lb.id,
                    "port": listener.port,
                    "protocol": listener.protocol.value,
                    "certificate_arn": listener.certificate,
                    "default_action": {
                        "type": "forward",
                        "target_group_arn": target_group.id,
                    },
                },
            )
            target_groups.append(
                TargetGroupSpec(
                    name=target_group.name,
                    port=listener.port,
                    protocol=listener.protocol,
                    arn=target_group.id,
                    listener_arn=listener_node.id,
                )
            )
        debug(
            "Load balancer %s with listeners %s",
            name,
            [listener.port for listener in listeners],
        )
        return LoadBalancerSpec(
            name=lb.name,
            listeners=listeners,
            target_vpc=vpc_id,
            public_subnets=list(public_subnets),
            security_group=lb_group,
            fleet_group=fleet_group,
            target_groups=target_groups,
            arn=lb.id,
            dns_name=lb.attribute("dns_name"),
        )
