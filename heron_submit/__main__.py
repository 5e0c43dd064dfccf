from heron_submit.cli import main

main()
