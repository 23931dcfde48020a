# AI Module
# Model selection, backend invocation and fallback for document analysis
