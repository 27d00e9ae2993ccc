"""
fMRIPrep to BrainVoyager conversion package.
"""
