from pathlib import Path

import click

from dao_deployment.constants import CONSTRUCTOR_PARAMS_DIR


class MinInt(click.ParamType):
    name = "minint"

    def __init__(self, min_value):
        self.min_value = min_value

    def convert(self, value, param, ctx):
        try:
            ivalue = int(value)
        except ValueError:
            self.fail(f"{value} is not a valid integer", param, ctx)
        if ivalue < self.min_value:
            self.fail(
                f"{value} is less than the minimum allowed value of {self.min_value}", param, ctx
            )
        return ivalue


class ParamsFile(click.ParamType):
    """A deployment parameters file, given as a path or as a name under constructor_params."""

    name = "params_file"

    def convert(self, value, param, ctx):
        filepath = Path(value)
        if filepath.exists():
            return filepath
        bundled = CONSTRUCTOR_PARAMS_DIR / value
        if bundled.suffix not in (".yml", ".yaml"):
            bundled = bundled.with_suffix(".yml")
        if bundled.exists():
            return bundled
        self.fail(f"No deployment parameters file found at {value}", param, ctx)
