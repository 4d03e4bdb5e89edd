"""torch.fx frontend producing GraphViews"""

from .fx_importer import FXImporter, MarkerAwareTracer, import_module, element_kind

__all__ = ['FXImporter', 'MarkerAwareTracer', 'import_module', 'element_kind']
