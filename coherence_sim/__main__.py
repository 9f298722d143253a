import sys

from coherence_sim.cli import main

sys.exit(main())
