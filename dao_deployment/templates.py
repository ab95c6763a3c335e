import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Iterable, List, Optional, Union

from dao_deployment.artifacts import BuildArtifact
from dao_deployment.results import DeploymentResult, DeploymentResults

PreDeployHook = Callable[["Template", DeploymentResults], None]
PostDeployHook = Callable[[DeploymentResult, DeploymentResults], None]


# Argument sources


class ArgumentSource(ABC):
    """A constructor or call argument that is only known once earlier contracts exist."""

    @abstractmethod
    def resolve(self, results: DeploymentResults, signer) -> Any:
        raise NotImplementedError

    def references(self) -> List[str]:
        """Names of the templates this argument depends on."""
        return list()


class Literal(ArgumentSource):
    def __init__(self, value: Any):
        self.value = value

    def resolve(self, results: DeploymentResults, signer) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


class Reference(ArgumentSource):
    """A field (usually the address) of an earlier deployment result."""

    def __init__(self, name: str, field: str = "address"):
        self.name = name
        self.field = field

    def resolve(self, results: DeploymentResults, signer) -> Any:
        result = results[self.name]
        return getattr(result, self.field)

    def references(self) -> List[str]:
        return [self.name]

    def __repr__(self) -> str:
        return f"Reference({self.name}.{self.field})"


class DeployerAddress(ArgumentSource):
    def resolve(self, results: DeploymentResults, signer) -> Any:
        return signer.address

    def __repr__(self) -> str:
        return "DeployerAddress()"


class EncodedCall(ArgumentSource):
    """Calldata for `method(*args)` on an earlier contract, e.g. a proxy initializer."""

    def __init__(self, target: str, method: str, args: Optional[List[Any]] = None):
        self.target = target
        self.method = method
        self.args = list(args or [])

    def resolve(self, results: DeploymentResults, signer) -> Any:
        handle = results[self.target].handle
        resolved_args = resolve_arguments(self.args, results, signer)
        return signer.encode_call(handle, self.method, *resolved_args)

    def references(self) -> List[str]:
        return [self.target, *_collect_references(self.args)]

    def __repr__(self) -> str:
        return f"EncodedCall({self.target}.{self.method}, {self.args!r})"


def _resolve_param(value: Any, results: DeploymentResults, signer) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, (list, tuple)):
        return [_resolve_param(v, results, signer) for v in value]

    if isinstance(value, ArgumentSource):
        return value.resolve(results, signer)

    return value  # literally a value


def resolve_arguments(values: Iterable[Any], results: DeploymentResults, signer) -> List[Any]:
    return [_resolve_param(value, results, signer) for value in values]


def _collect_references(values: Iterable[Any]) -> List[str]:
    names = list()
    for value in values:
        if isinstance(value, (list, tuple)):
            names.extend(_collect_references(value))
        elif isinstance(value, ArgumentSource):
            names.extend(value.references())
    return names


# Wiring actions


class WiringAction(ABC):
    """Typed post-deployment step, applied after the template's post_deploy hook."""

    @abstractmethod
    def apply(
        self, result: DeploymentResult, results: DeploymentResults, signer, confirmation
    ) -> None:
        raise NotImplementedError

    def references(self) -> List[str]:
        return list()


class WrapProxy(WiringAction):
    """Rebinds a proxy's handle to its implementation's interface."""

    def apply(
        self, result: DeploymentResult, results: DeploymentResults, signer, confirmation
    ) -> None:
        from dao_deployment.proxy import wrap_proxy

        wrap_proxy(signer=signer, result=result, results=results)

    def __repr__(self) -> str:
        return "WrapProxy()"


class Transact(WiringAction):
    """Submits `method(*args)` on the freshly deployed contract and awaits it."""

    def __init__(self, method: str, args: Optional[List[Any]] = None):
        self.method = method
        self.args = list(args or [])

    def apply(
        self, result: DeploymentResult, results: DeploymentResults, signer, confirmation
    ) -> None:
        resolved_args = resolve_arguments(self.args, results, signer)
        receipt = signer.transact(result.handle, self.method, *resolved_args)
        confirmation.watch(receipt)

    def references(self) -> List[str]:
        return _collect_references(self.args)

    def __repr__(self) -> str:
        return f"Transact({self.method}, {self.args!r})"


# Templates


class Template:
    """Declarative description of one contract to deploy."""

    def __init__(
        self,
        name: str,
        artifact: BuildArtifact,
        constructor_args: Optional[List[Any]] = None,
        pre_deploy: Optional[PreDeployHook] = None,
        post_deploy: Optional[PostDeployHook] = None,
        wiring: Optional[List[WiringAction]] = None,
        proxy_for: Optional[str] = None,
    ):
        self.name = name
        self.artifact = artifact
        self.constructor_args = list(constructor_args or [])
        self.pre_deploy = pre_deploy
        self.post_deploy = post_deploy
        self.wiring = list(wiring or [])
        self.proxy_for = proxy_for

    def references(self) -> List[str]:
        """Template names declaratively referenced by arguments and wiring actions."""
        names = _collect_references(self.constructor_args)
        for action in self.wiring:
            names.extend(action.references())
        return names

    def __repr__(self) -> str:
        return f"<Template {self.name}>"


class TemplateRegistry:
    """
    Ordered collection of templates. Declaration order is the deployment order
    and, therefore, the dependency order: no sorting is attempted.
    """

    class Invalid(Exception):
        """Raised when the registry cannot be deployed as declared"""

    def __init__(
        self, templates: Union[typing.Mapping[str, Template], Iterable[Template]]
    ):
        self._templates = OrderedDict()
        if isinstance(templates, typing.Mapping):
            for name, template in templates.items():
                if template.name != name:
                    raise self.Invalid(
                        f"Template registered as '{name}' is named '{template.name}'."
                    )
                self._add(template)
        else:
            for template in templates:
                self._add(template)

    def _add(self, template: Template) -> None:
        name = template.name
        if not name:
            raise self.Invalid("Template name must not be empty.")
        if name in self._templates:
            raise self.Invalid(f"Duplicate template name '{name}'.")
        if template.artifact is None:
            raise self.Invalid(f"Template '{name}' has no build artifact.")
        if not template.artifact.bytecode:
            raise self.Invalid(f"Build artifact of template '{name}' has no bytecode.")

        declared = list(self._templates)
        if template.proxy_for is not None and template.proxy_for not in declared:
            raise self.Invalid(
                f"'{name}' is a proxy for '{template.proxy_for}' which is not declared before it."
            )
        for reference in template.references():
            if reference not in declared:
                raise self.Invalid(
                    f"'{name}' refers to '{reference}' which is not declared before it."
                )

        self._templates[name] = template

    @property
    def names(self) -> List[str]:
        return list(self._templates)

    def proxies(self) -> "OrderedDict[str, str]":
        """Proxy template name -> implementation template name."""
        return OrderedDict(
            (name, template.proxy_for)
            for name, template in self._templates.items()
            if template.proxy_for is not None
        )

    def __getitem__(self, name: str) -> Template:
        return self._templates[name]

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def __iter__(self):
        return iter(self._templates.values())

    def __len__(self) -> int:
        return len(self._templates)
