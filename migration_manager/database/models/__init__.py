from .source import SourceRow
from .target import TargetRow
from .batch import BatchRow
from .instance import InstanceRow
from .overrides import OverridesRow
