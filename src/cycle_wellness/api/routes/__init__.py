"""Route modules, one APIRouter each; mounted in `cycle_wellness.api.app`."""
