from imagerunner.cli import main

main()
