import setuptools


setuptools.setup(
	name="backmap",
	version="1.0.0",
	description="Map a GENCODE/Ensembl gene annotation between genome assemblies using whole-genome alignments",
	install_requires=['numpy>=1.19.0', 'gffutils>=0.10.1', 'pysam>=0.16.0.1', 'interlap>=0.2.6', 'ujson'],
	extras_require={'test': ['pytest']},
	python_requires='>=3.6',
	packages=['backmap'],
	entry_points={'console_scripts': ['backmap = backmap.run_backmap:main'], },
)
