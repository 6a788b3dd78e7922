class Stateful:
    """
    This is a mixin class for adaptwave objects that are stateful.
    The state of an object is incremented whenever it is modified.
    For example, a mesh increments its state at the conclusion of every
    topology change, so anything built from it can tell whether it is
    stale.
    """

    def __init__(self):
        self._state = 0
        super().__init__()

    def _increment(self):
        self._state += 1

    def _get_state(self):
        return self._state


class aw_object:
    """
    The aw (mixin) class adds common functionality that we wish to provide on all aw_objects
    such as the view method (class documentation plus instance-specific information)
    """

    _obj_count = 0  # a class variable to count the number of objects

    def __init__(self):
        super().__init__()

        self._aw_id = aw_object._obj_count
        aw_object._obj_count += 1

    @classmethod
    def aw_object_counter(cls):
        """Number of aw_object instances created"""
        return aw_object._obj_count

    @property
    def instance_number(self):
        """Unique number of the aw_object instance"""
        return self._aw_id

    def __str__(self):
        s = super().__str__()
        return f"{self.__class__.__name__} instance {self.instance_number}, {s}"

    def view(self, class_documentation=False):
        from textwrap import dedent
        from adaptwave.mpi import pprint

        if class_documentation and self.__class__.__doc__:
            pprint(dedent(self.__class__.__doc__))
            pprint("---")

        pprint(f"Class: {self.__class__}")
        self._object_viewer()

    # placeholder
    def _object_viewer(self):
        return
