"""AccessHub: building access management backend.

Buildings, floors, doors and their lock state, door access requests with an
approval workflow, device sync to an IoT platform and real-time fan-out.
"""

__version__ = "1.0.0"
