"""Pulumi program declaring the organization foundation or one environment stack."""

import pulumi

from orgstack import stacks
from orgstack.pulumi_engine import PulumiEngine

settings = stacks.Settings.load(pulumi.get_stack(), pulumi.Config("orgstack"))
stacks.configure_logging(settings.log_level)
stacks.run(PulumiEngine(), settings)
