"""Test if namespaces importing work."""


def test_import():
    """The top level namespace exposes the core objects and subpackages."""
    import procsim  # noqa: PLC0415
    from procsim.datacollection import DataCollector  # noqa: PLC0415
    from procsim.resources import Resource  # noqa: PLC0415
    from procsim.time import EventList  # noqa: PLC0415

    assert procsim.DataCollector is DataCollector
    assert procsim.Resource is Resource
    assert procsim.time.EventList is EventList
    assert procsim.resources.Store is procsim.Store

    for name in procsim.__all__:
        assert hasattr(procsim, name)
