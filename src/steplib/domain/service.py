from steplib.domain.entity import StepMetadata
from steplib.domain.exception import ConfigurationError
from steplib.domain.value_object import get_step_marker


def validate_metadata(metadata: StepMetadata) -> bool:
    """Validates the merged metadata of a step function.

    Args:
        metadata: The StepMetadata instance to validate.

    Returns:
        True if the metadata is valid, raises ConfigurationError otherwise.
    """
    if not metadata.name:
        raise ConfigurationError("Step function has no name")
    seen_names = set()
    for arg in metadata.arguments:
        if not arg.name:
            raise ConfigurationError(f"Step function {metadata.name} has an argument without a name")
        if arg.name in seen_names:
            raise ConfigurationError(f"Duplicate argument name found on step function {metadata.name}: {arg.name}")
        seen_names.add(arg.name)
    return True


def default_step_name(implementation_type: type) -> str:
    """Returns the marker name of a type, else its class name with a lower case first letter."""
    marker = get_step_marker(implementation_type)
    if marker is not None and marker.name:
        return marker.name
    name = implementation_type.__name__
    return name[:1].lower() + name[1:]
