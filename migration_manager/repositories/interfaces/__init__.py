from .source import ISourceRepository
from .target import ITargetRepository
from .instance import IInstanceRepository
from .overrides import IOverridesRepository
from .batch import IBatchRepository
